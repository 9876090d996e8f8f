from pathlib import Path

import aiofiles
import aiofiles.os

from anyshare.logger_config import setup_logger
from anyshare.services.errors import PayloadMissingError, StorageError

logger = setup_logger()


class FileObjectStore:
    """Byte storage for uploaded payloads, one file per object id."""

    def __init__(self, data_dir: Path, temp_dir: Path):
        self.data_dir = Path(data_dir)
        self.temp_dir = Path(temp_dir)

    async def initialize(self):
        """Create the storage directories and clear interrupted uploads."""
        logger.info("Initializing object store...")

        self.data_dir.mkdir(exist_ok=True, parents=True)
        self.temp_dir.mkdir(exist_ok=True, parents=True)
        logger.debug(f"Storage directories created/verified: {self.data_dir}, {self.temp_dir}")

        files_removed = 0
        for file in self.temp_dir.glob("*"):
            if file.is_file():
                await aiofiles.os.unlink(file)
                files_removed += 1
        logger.info(f"Cleaned temporary directory, removed {files_removed} files")

    def get_payload_path(self, object_id: str) -> Path:
        return self.data_dir / object_id

    async def put(self, object_id: str, data: bytes) -> None:
        """Write the payload to a temp file, then move it into place."""
        payload_path = self.get_payload_path(object_id)
        temp_path = self.temp_dir / f"{object_id}_temp.part"
        try:
            async with aiofiles.open(temp_path, 'wb') as f:
                await f.write(data)
            await aiofiles.os.rename(str(temp_path), str(payload_path))
        except OSError as e:
            logger.error(f"Error writing payload {object_id}: {e}", exc_info=True)
            if await aiofiles.os.path.exists(temp_path):
                await aiofiles.os.unlink(temp_path)
            raise StorageError(f"Error writing payload {object_id}: {e}") from e
        logger.debug(f"Stored payload {object_id} ({len(data)} bytes)")

    async def get(self, object_id: str) -> bytes:
        payload_path = self.get_payload_path(object_id)
        try:
            async with aiofiles.open(payload_path, 'rb') as f:
                return await f.read()
        except FileNotFoundError:
            raise PayloadMissingError(object_id) from None
        except OSError as e:
            raise StorageError(f"Error reading payload {object_id}: {e}") from e

    async def delete(self, object_id: str) -> None:
        """Delete the payload. A payload that is already gone is not an error."""
        payload_path = self.get_payload_path(object_id)
        try:
            await aiofiles.os.unlink(payload_path)
        except FileNotFoundError:
            logger.debug(f"Payload {object_id} already absent")
        except OSError as e:
            raise StorageError(f"Error deleting payload {object_id}: {e}") from e

    async def exists(self, object_id: str) -> bool:
        return await aiofiles.os.path.exists(self.get_payload_path(object_id))
