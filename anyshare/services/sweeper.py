import time
from typing import Callable, List

from anyshare.logger_config import setup_logger
from anyshare.services.errors import StorageError
from anyshare.services.object_store import FileObjectStore
from anyshare.services.registry import ObjectRegistry

logger = setup_logger()


def epoch_seconds() -> int:
    return int(time.time())


class ExpirationSweeper:
    """Evicts expired records together with their payloads."""

    def __init__(
        self,
        registry: ObjectRegistry,
        store: FileObjectStore,
        clock: Callable[[], int] = epoch_seconds,
    ):
        self.registry = registry
        self.store = store
        self.clock = clock

    async def sweep(self) -> List[str]:
        """Run one pass over the index and return the evicted ids.

        A record whose payload cannot be deleted stays in the index so the
        next pass retries it; dropping it would leave an untracked file.
        """
        evicted = []
        async with self.registry.lock:
            now = self.clock()
            for record in self.registry.index.iterate():
                if not record.is_expired(now):
                    continue
                if not record.is_inline:
                    try:
                        await self.store.delete(record.id)
                    except StorageError as e:
                        logger.warning(f"Delete of expired object {record.id} failed, will retry: {e.message}")
                        continue
                self.registry.index.remove(record.id)
                evicted.append(record.id)

        if evicted:
            logger.info(f"Swept {len(evicted)} expired objects, {len(self.registry)} remaining")
        return evicted
