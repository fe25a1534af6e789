import os

import pytest
from typer.testing import CliRunner

from storesync.core.context import ResilienceContext
from storesync.core.services.data_access_service import DataAccessService
from storesync.infrastructure.backend.memory_backend import InMemoryBackend
from storesync.infrastructure.cache.lru_cache import LRUCache
from storesync.infrastructure.config import settings as settings_module
from storesync.infrastructure.connectivity.connection_monitor import ConnectionMonitor
from storesync.infrastructure.queue.offline_queue import OfflineQueue
from storesync.infrastructure.resilience.rate_limiter import TokenBucketRateLimiter
from storesync.infrastructure.resilience.retry import RetryPolicy
from storesync.infrastructure.storage.disk_store import MemoryKeyValueStore


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Stands in for asyncio.sleep; records requested delays without waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def context(clock, sleeps, store):
    """A resilience context with production sizes, a fake clock and instant backoff."""
    return ResilienceContext(
        cache=LRUCache(max_items=100, ttl_seconds=300, clock=clock),
        rate_limiter=TokenBucketRateLimiter(max_tokens=100, refill_rate=10, clock=clock),
        offline_queue=OfflineQueue(store, max_size=100, replay_delay=0),
        connection_monitor=ConnectionMonitor(initially_online=True),
        retry_policy=RetryPolicy(max_retries=3, base_delay=1.0, attempt_timeout=1.0, sleep=sleeps),
    )


@pytest.fixture
def service(context, backend):
    return DataAccessService(context, backend)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keeps tests away from the user's ~/.storesync config and environment."""
    for name in list(os.environ):
        if name.startswith(settings_module.ENV_PREFIX):
            monkeypatch.delenv(name)
    monkeypatch.setattr(settings_module, "_config", {})
    monkeypatch.setattr(settings_module, "_loaded", True)
    settings_module.clear_test_config()
    yield
    settings_module.clear_test_config()
