"""Test fixtures for the dynalink service."""

import asyncio
import os
import time

# Settings are read at import time, so the environment is prepared first
os.environ["ENVIRONMENT"] = "testing"
os.environ["LOG_TO_FILE"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["OTEL_ENABLED"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from dynalink.cache.resolution_cache import INVALIDATE_SCRIPT, POPULATE_SCRIPT, ResolutionCache
from dynalink.db.base import create_engine, create_session_factory, init_models
from dynalink.main import app as main_app
from dynalink.repositories.link_repository import LinkRepository
from dynalink.repositories.scan_repository import ScanRepository
from dynalink.services.background import BackgroundTaskRunner
from dynalink.services.dispatcher import RedirectDispatcher
from dynalink.services.links import LinkService
from dynalink.services.usage import UsageAggregator


class MockRedis:
    """In-memory stand-in for a redis.asyncio client.

    ``fail`` makes every call raise a connection error, ``delay`` makes
    every call sleep first, so cache outages and timeouts can be simulated.
    ``expiry`` holds each key's absolute expiry in epoch milliseconds.
    """

    def __init__(self):
        self.data = {}
        self.expiry = {}
        self.fail = False
        self.delay = 0.0
        self.calls = []

    async def _interact(self, operation, key=None):
        self.calls.append((operation, key))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RedisConnectionError("mock redis is down")

    def _live(self, key):
        expires_ms = self.expiry.get(key)
        if expires_ms is not None and expires_ms <= time.time() * 1000:
            self.data.pop(key, None)
            self.expiry.pop(key, None)
        return self.data.get(key)

    def _store(self, key, value, expires_ms=None):
        self.data[key] = value
        if expires_ms is not None:
            self.expiry[key] = expires_ms
        else:
            self.expiry.pop(key, None)

    async def get(self, key):
        await self._interact("get", key)
        return self._live(key)

    async def set(self, key, value, ex=None, pxat=None):
        await self._interact("set", key)
        if ex is not None:
            pxat = int(time.time() * 1000) + ex * 1000
        self._store(key, value, pxat)
        return True

    async def delete(self, *keys):
        await self._interact("delete", keys[0] if keys else None)
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                removed += 1
            self.data.pop(key, None)
            self.expiry.pop(key, None)
        return removed

    async def eval(self, script, numkeys, *keys_and_args):
        keys, args = keys_and_args[:numkeys], keys_and_args[numkeys:]
        await self._interact("eval", keys[0])
        entry, fence = keys
        if script == POPULATE_SCRIPT:
            destination, version_ms, expires_ms = args
            current = self._live(fence)
            if current is not None and int(current) > int(version_ms):
                return 0
            self._store(entry, destination, int(expires_ms))
            return 1
        if script == INVALIDATE_SCRIPT:
            version_ms, lifetime_ms = args
            self._store(fence, str(version_ms), int(time.time() * 1000) + int(lifetime_ms))
            removed = 1 if self._live(entry) is not None else 0
            self.data.pop(entry, None)
            self.expiry.pop(entry, None)
            return removed
        raise AssertionError("unexpected script")

    async def ping(self):
        await self._interact("ping")
        return True


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create a test engine on a fresh SQLite file."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return create_session_factory(test_engine)


@pytest_asyncio.fixture
async def test_db(session_factory):
    """Create a database session for one test."""
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest.fixture
def mock_redis():
    """Mock Redis for testing."""
    return MockRedis()


@pytest.fixture
def cache(mock_redis):
    return ResolutionCache(mock_redis, default_ttl=86400, timeout=0.2, key_prefix="r:")


@pytest_asyncio.fixture
async def task_runner():
    runner = BackgroundTaskRunner()
    yield runner
    await runner.drain(timeout=5)


@pytest.fixture
def link_repository():
    return LinkRepository()


@pytest.fixture
def scan_repository():
    return ScanRepository()


@pytest.fixture
def link_service(link_repository, cache, task_runner):
    return LinkService(link_repository=link_repository, cache=cache, task_runner=task_runner)


@pytest.fixture
def dispatcher(link_repository, scan_repository, cache, task_runner, session_factory):
    return RedirectDispatcher(
        link_repository=link_repository,
        scan_repository=scan_repository,
        cache=cache,
        task_runner=task_runner,
        session_factory=session_factory,
    )


@pytest.fixture
def usage_aggregator(link_repository, scan_repository):
    return UsageAggregator(link_repository=link_repository, scan_repository=scan_repository)


@pytest.fixture
def test_app(session_factory, cache, task_runner):
    """Wire the FastAPI app to the test database, mock cache and task runner."""
    app = main_app
    app.state.session_factory = session_factory
    app.state.cache = cache
    app.state.task_runner = task_runner
    app.state.redis_manager = None
    return app


@pytest_asyncio.fixture
async def client(test_app):
    """HTTP client calling the app in-process; startup hooks are not run."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client
