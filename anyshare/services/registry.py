import asyncio
from typing import Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

from anyshare.services.errors import DuplicateIdentifierError, ObjectNotFoundError
from anyshare.services.identifiers import IdentifierAllocator


class ObjectRecord(BaseModel):
    """Metadata of one stored object.

    Field aliases are the keys used in the snapshot file.
    A negative ``ttl_seconds`` means the object never expires.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    display_name: str = Field(default="", alias="filename")
    size_bytes: int = Field(ge=0, alias="size")
    created_at: int
    ttl_seconds: int = Field(alias="expired_time")
    inline_text: str = Field(default="", alias="text")

    @property
    def is_inline(self) -> bool:
        return self.inline_text != ""

    @property
    def expires_at(self) -> Optional[int]:
        if self.ttl_seconds < 0:
            return None
        return self.created_at + self.ttl_seconds

    def is_expired(self, now: int) -> bool:
        return self.ttl_seconds >= 0 and self.created_at + self.ttl_seconds < now


class ObjectIndex:
    """Identifier to record mapping.

    Not synchronized on its own; callers go through ObjectRegistry, which
    holds the lock. Reserved ids belong to creates whose payload is still
    being written and count as taken.
    """

    def __init__(self, records: Optional[Iterable[ObjectRecord]] = None):
        self._records: Dict[str, ObjectRecord] = {}
        self._reserved: Set[str] = set()
        for record in records or ():
            self.insert(record)

    def __contains__(self, object_id: object) -> bool:
        return object_id in self._records or object_id in self._reserved

    def __len__(self) -> int:
        return len(self._records)

    def reserve(self, object_id: str) -> None:
        if object_id in self:
            raise DuplicateIdentifierError(object_id)
        self._reserved.add(object_id)

    def release(self, object_id: str) -> None:
        self._reserved.discard(object_id)

    def insert(self, record: ObjectRecord) -> None:
        if record.id in self._records:
            raise DuplicateIdentifierError(record.id)
        self._reserved.discard(record.id)
        self._records[record.id] = record

    def get(self, object_id: str) -> ObjectRecord:
        try:
            return self._records[object_id]
        except KeyError:
            raise ObjectNotFoundError(object_id) from None

    def remove(self, object_id: str) -> None:
        self._records.pop(object_id, None)

    def iterate(self) -> List[ObjectRecord]:
        return list(self._records.values())


class ObjectRegistry:
    """Process-wide catalog of stored objects.

    Every mutation of the index happens under ``lock``. The sweeper and the
    shutdown hook acquire the same lock.
    """

    def __init__(
        self,
        index: Optional[ObjectIndex] = None,
        allocator: Optional[IdentifierAllocator] = None,
    ):
        self.index = index if index is not None else ObjectIndex()
        self.allocator = allocator if allocator is not None else IdentifierAllocator()
        self.lock = asyncio.Lock()

    async def reserve_identifier(self) -> str:
        """Allocate a fresh id and mark it taken in one critical section."""
        async with self.lock:
            object_id = self.allocator.allocate(self.index)
            self.index.reserve(object_id)
        return object_id

    async def commit(self, record: ObjectRecord) -> None:
        async with self.lock:
            self.index.insert(record)

    async def release(self, object_id: str) -> None:
        async with self.lock:
            self.index.release(object_id)

    async def lookup(self, object_id: str) -> ObjectRecord:
        async with self.lock:
            return self.index.get(object_id)

    async def records(self) -> List[ObjectRecord]:
        async with self.lock:
            return self.index.iterate()

    def __len__(self) -> int:
        return len(self.index)
