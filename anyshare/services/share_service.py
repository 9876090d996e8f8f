import asyncio
import re
from dataclasses import dataclass
from typing import Callable, Optional, Set, Union

from anyshare import config
from anyshare.logger_config import setup_logger
from anyshare.services.errors import InvalidInputError, ObjectExpiredError, StorageError
from anyshare.services.object_store import FileObjectStore
from anyshare.services.persistence import SnapshotGateway
from anyshare.services.registry import ObjectRecord, ObjectRegistry
from anyshare.services.sweeper import ExpirationSweeper, epoch_seconds

logger = setup_logger()

TTL_PATTERN = re.compile(r"[+-]?[0-9]+")


@dataclass
class FetchResult:
    record: ObjectRecord
    content: Union[str, bytes]


def parse_ttl(raw: Optional[str]) -> int:
    """Turn the ``expired_time`` query value into a ttl.

    An absent value means the default ttl. Anything that is not a positive
    integer resets the ttl to 0, which expires the object a second after it
    is created, unless REJECT_INVALID_TTL is set.
    """
    if raw is None or raw == "":
        return config.DEFAULT_TTL_SECONDS
    # Optional sign and ASCII digits, nothing else
    ttl = int(raw) if TTL_PATTERN.fullmatch(raw) else None
    if ttl is None or ttl <= 0:
        if config.REJECT_INVALID_TTL:
            raise InvalidInputError(f"Invalid expired_time={raw!r}")
        logger.error(f"Invalid param expired_time={raw!r}, using 0")
        return 0
    return ttl


class ShareService:
    """Creates and fetches shared objects on top of the registry."""

    def __init__(
        self,
        registry: ObjectRegistry,
        store: FileObjectStore,
        sweeper: Optional[ExpirationSweeper] = None,
        clock: Callable[[], int] = epoch_seconds,
        max_payload_size: int = config.MAX_FILE_SIZE,
    ):
        self.registry = registry
        self.store = store
        self.clock = clock
        self.sweeper = sweeper or ExpirationSweeper(registry, store, clock)
        self.max_payload_size = max_payload_size
        self._background_tasks: Set[asyncio.Task] = set()

    async def startup(self) -> None:
        """Purge whatever expired while the server was down."""
        await self.sweeper.sweep()

    async def shutdown(self, gateway: SnapshotGateway) -> None:
        """Let pending sweeps finish, then snapshot the index under the lock."""
        await self.wait_for_sweeps()
        async with self.registry.lock:
            await gateway.save(self.registry.index)

    async def wait_for_sweeps(self) -> None:
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    def schedule_sweep(self) -> asyncio.Task:
        task = asyncio.create_task(self._sweep_in_background())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def _sweep_in_background(self) -> None:
        try:
            await self.sweeper.sweep()
        except Exception as e:
            # Detached task, nothing else will see the error
            logger.error(f"Background sweep failed: {e}", exc_info=True)

    async def _abandon_upload(self, object_id: str) -> None:
        """Undo a create that never committed.

        The payload goes first: once the id is released it can be handed
        to another upload that writes the same path.
        """
        try:
            await self.store.delete(object_id)
        except StorageError as e:
            logger.warning(f"Could not remove payload of abandoned upload {object_id}: {e.message}")
        finally:
            await self.registry.release(object_id)

    async def create_from_upload(self, data: bytes, display_name: str, ttl: int) -> ObjectRecord:
        if len(data) > self.max_payload_size:
            raise InvalidInputError(
                f"Payload of {len(data)} bytes exceeds maximum allowed size ({self.max_payload_size} bytes)"
            )

        object_id = await self.registry.reserve_identifier()
        try:
            await self.store.put(object_id, data)
            record = ObjectRecord(
                id=object_id,
                display_name=display_name,
                size_bytes=len(data),
                created_at=self.clock(),
                ttl_seconds=ttl,
            )
            await self.registry.commit(record)
        except BaseException:
            # Also covers cancellation between the payload write and the commit
            await self._abandon_upload(object_id)
            raise
        logger.info(f"Created object {object_id} from upload {display_name!r} ({len(data)} bytes, ttl={ttl})")

        self.schedule_sweep()
        return record

    async def create_from_text(self, text: str, ttl: int) -> ObjectRecord:
        if not text:
            raise InvalidInputError("Invalid param text")

        size = len(text.encode('utf-8'))
        if size > self.max_payload_size:
            raise InvalidInputError(
                f"Text of {size} bytes exceeds maximum allowed size ({self.max_payload_size} bytes)"
            )

        object_id = await self.registry.reserve_identifier()
        try:
            record = ObjectRecord(
                id=object_id,
                size_bytes=size,
                created_at=self.clock(),
                ttl_seconds=ttl,
                inline_text=text,
            )
            await self.registry.commit(record)
        except BaseException:
            await self.registry.release(object_id)
            raise
        logger.info(f"Created text object {object_id} ({size} bytes, ttl={ttl})")

        self.schedule_sweep()
        return record

    async def describe(self, object_id: str) -> ObjectRecord:
        """Return the record of a live object without reading its payload."""
        record = await self.registry.lookup(object_id)
        if record.is_expired(self.clock()):
            await self.sweeper.sweep()
            raise ObjectExpiredError(object_id)
        return record

    async def fetch(self, object_id: str) -> FetchResult:
        record = await self.describe(object_id)
        if record.is_inline:
            return FetchResult(record=record, content=record.inline_text)

        data = await self.store.get(object_id)
        logger.debug(f"Fetched object {object_id} ({len(data)} bytes)")
        return FetchResult(record=record, content=data)
