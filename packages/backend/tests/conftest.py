"""Test fixtures — isolated store, in-memory cache and bus per test.

Learn: Each test gets a fresh SQLite file in tmp_path (via aiosqlite) and
the in-process MemoryCache / MemoryBus backends, so the full read/write
protocol runs without Postgres or Redis. The app is built around that
Services container with create_app(); ASGITransport doesn't run the
lifespan, so the services fixture starts and stops the container itself.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from relaycache.config import Settings
from relaycache.container import build_services
from relaycache.main import create_app


@pytest.fixture()
def test_settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        cache_backend="memory",
        bus_backend="memory",
        relay_topics=["custom_channel"],
        io_timeout_seconds=2.0,
    )


@pytest_asyncio.fixture()
async def services(test_settings):
    """Started Services container; stopped after the test."""
    svc = build_services(test_settings)
    await svc.start()
    try:
        yield svc
    finally:
        await svc.stop()


@pytest_asyncio.fixture()
async def store(services):
    return services.store


@pytest_asyncio.fixture()
async def client(test_settings, services):
    """HTTP client against an app wired to the test services."""
    app = create_app(test_settings, services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
