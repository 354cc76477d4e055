import sys
from pathlib import Path

import httpx
import pytest

# Ensure the project root is on sys.path for direct pytest runs
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from placeintel.services.http_fetcher import BoundedFetcher  # noqa: E402


class FakeClock:
    """Manually advanced clock for TTL and window tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def no_sleep(_seconds):
    return None


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_fetcher():
    """Build a BoundedFetcher whose client answers through ``handler``."""

    def factory(handler, **kwargs):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        kwargs.setdefault("sleep", no_sleep)
        kwargs.setdefault("retry_delay", 0)
        return BoundedFetcher(client, **kwargs)

    return factory
