"""Pytest configuration and fixtures"""
import os
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

# Set test environment variables
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("CART_STORE_BACKEND", "memory")

from marketcart.cart import CartRepository, DiscountExpiryScheduler
from marketcart.config import CartConfig
from marketcart.db import MemoryStore
from marketcart.realtime import ChangeBroadcaster


START = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable wall clock."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self.now = self.now + timedelta(seconds=seconds, **kwargs)
        return self.now


@pytest.fixture
def clock():
    """Clock starting at 2026-01-01 12:00 UTC"""
    return FakeClock()


@pytest.fixture
def config(tmp_path):
    """Default config, 20 minute discount window"""
    return CartConfig(store_backend="memory", store_path=tmp_path / "store")


@pytest.fixture
def store():
    """In-memory durable store"""
    return MemoryStore()


@pytest.fixture
def broadcaster():
    return ChangeBroadcaster()


@pytest.fixture
def repository(store, broadcaster, config, clock):
    """Cart repository over the in-memory store"""
    return CartRepository(store, broadcaster, config=config, clock=clock)


@pytest.fixture
def scheduler(repository, broadcaster, config, clock):
    """Discount scheduler sharing the repository clock"""
    scheduler = DiscountExpiryScheduler(repository, broadcaster, config=config, clock=clock)
    yield scheduler
    scheduler.stop()


@pytest.fixture
def failing_store():
    """Store whose every call raises StoreUnavailable"""
    from marketcart.errors import StoreUnavailable

    store = Mock()
    store.get.side_effect = StoreUnavailable("disk is gone")
    store.set.side_effect = StoreUnavailable("quota exceeded")
    store.remove.side_effect = StoreUnavailable("disk is gone")
    return store


@pytest.fixture
def sample_item():
    """Discounted cart item record, as the product grid adds it"""
    return {
        "id": 1,
        "title": "Wireless Headphones",
        "image": "https://example.com/headphones.jpg",
        "price": 10.0,
        "quantity": 2,
        "discountPercent": 20,
    }


class FlakyReadStore(MemoryStore):
    """MemoryStore whose next N reads raise StoreUnavailable; writes succeed"""

    def __init__(self):
        super().__init__()
        self.failing_reads = 0

    def fail_next_read(self, count: int = 1) -> None:
        self.failing_reads = count

    def get(self, key):
        from marketcart.errors import StoreUnavailable

        if self.failing_reads:
            self.failing_reads -= 1
            raise StoreUnavailable("read timed out")
        return super().get(key)


@pytest.fixture
def flaky_store():
    """In-memory store with transient read failures"""
    return FlakyReadStore()


@pytest.fixture
def flaky_repository(flaky_store, broadcaster, config, clock):
    return CartRepository(flaky_store, broadcaster, config=config, clock=clock)
