import itertools

import pytest
import pytest_asyncio

from anyshare.services.identifiers import IdentifierAllocator
from anyshare.services.object_store import FileObjectStore
from anyshare.services.registry import ObjectRegistry
from anyshare.services.share_service import ShareService
from anyshare.services.sweeper import ExpirationSweeper

START_TIME = 1_700_000_000


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int):
        self.now += seconds


class SequenceAllocator(IdentifierAllocator):
    """Allocator whose candidates come from a fixed, repeating sequence."""

    def __init__(self, candidates):
        super().__init__()
        self.drawn = []
        self._candidates = itertools.cycle(candidates)

    def candidate(self) -> str:
        object_id = next(self._candidates)
        self.drawn.append(object_id)
        return object_id


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def store(tmp_path):
    object_store = FileObjectStore(tmp_path / "data", tmp_path / "temp")
    await object_store.initialize()
    return object_store


@pytest.fixture
def registry():
    return ObjectRegistry()


@pytest.fixture
def sweeper(registry, store, clock):
    return ExpirationSweeper(registry, store, clock)


@pytest_asyncio.fixture
async def service(registry, store, sweeper, clock):
    share_service = ShareService(registry, store, sweeper, clock=clock, max_payload_size=1024)
    yield share_service
    await share_service.wait_for_sweeps()
