import pytest
import pytest_asyncio
from datetime import datetime, timedelta, timezone
from tortoise import Tortoise

from regulatory_outbox.core.db import MODELS_MODULES
from regulatory_outbox.events.codec import EventCodec
from regulatory_outbox.events.outbox_store import OutboxStore
from regulatory_outbox.events.registry import HandlerRegistry


class FakeClock:
    """Deterministic clock: time only moves when a test advances it."""

    def __init__(self, start=None):
        self.current = start or datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)
        self.mono = 1000.0

    def now(self):
        return self.current

    def monotonic(self):
        return self.mono

    def advance(self, **kwargs):
        delta = timedelta(**kwargs)
        self.current += delta
        self.mono += delta.total_seconds()


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory SQLite database per test."""
    await Tortoise.init(db_url="sqlite://:memory:", modules={"models": MODELS_MODULES})
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def codec():
    return EventCodec()


@pytest.fixture
def registry(codec):
    return HandlerRegistry(known_event_types=codec.known_event_types)


@pytest.fixture
def store(clock):
    return OutboxStore(max_attempts=5, clock=clock)
