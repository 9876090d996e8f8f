import json
from pathlib import Path

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from anyshare.logger_config import setup_logger
from anyshare.services.errors import DuplicateIdentifierError, SnapshotError
from anyshare.services.registry import ObjectIndex, ObjectRecord

logger = setup_logger()


class SnapshotGateway:
    """Loads the index from, and saves it to, a JSON snapshot file.

    The file maps each id to its record::

        {
            "ab3k": {
                "id": "ab3k",
                "filename": "notes.txt",
                "size": 12,
                "created_at": 1700000000,
                "expired_time": 7200,
                "text": ""
            }
        }
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    async def load(self) -> ObjectIndex:
        """Read the snapshot. A missing file yields an empty index."""
        if not await aiofiles.os.path.exists(self.path):
            logger.info(f"No snapshot at {self.path}, starting with an empty index")
            return ObjectIndex()

        try:
            async with aiofiles.open(self.path, 'r', encoding='utf-8') as f:
                content = await f.read()
            raw = json.loads(content)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise SnapshotError(f"Load {self.path} failed, {e}") from e

        if not isinstance(raw, dict):
            raise SnapshotError(f"Load {self.path} failed, expected an object keyed by id")

        index = ObjectIndex()
        for object_id, value in raw.items():
            if not isinstance(value, dict):
                raise SnapshotError(f"Load {self.path} failed, record {object_id!r} is not an object")
            value = {"id": object_id, **value}
            try:
                record = ObjectRecord.model_validate(value)
            except ValidationError as e:
                raise SnapshotError(f"Load {self.path} failed, invalid record {object_id!r}: {e}") from e
            if record.id != object_id:
                raise SnapshotError(
                    f"Load {self.path} failed, key {object_id!r} holds record {record.id!r}"
                )
            try:
                index.insert(record)
            except DuplicateIdentifierError as e:
                raise SnapshotError(f"Load {self.path} failed, {e.message}") from e

        logger.info(f"Loaded {len(index)} records from {self.path}")
        return index

    def dumps(self, index: ObjectIndex) -> str:
        records = sorted(index.iterate(), key=lambda r: r.id)
        payload = {record.id: record.model_dump(by_alias=True) for record in records}
        return json.dumps(payload, indent="\t", ensure_ascii=False)

    async def save(self, index: ObjectIndex) -> None:
        """Overwrite the snapshot with every record in ``index``."""
        temp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(temp_path, 'w', encoding='utf-8') as f:
                await f.write(self.dumps(index))
            await aiofiles.os.rename(str(temp_path), str(self.path))
        except OSError as e:
            raise SnapshotError(f"Save {self.path} failed, {e}") from e
        logger.info(f"Saved {len(index)} records to {self.path}")
