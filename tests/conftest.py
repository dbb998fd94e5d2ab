"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from bkk_realtime.config import Settings
from bkk_realtime.main import app
from bkk_realtime.services.container import BkkServices

from .fixtures.backend_fixture import FakeBackend, FakeClock, make_settings


@pytest.fixture
def backend() -> FakeBackend:
    """Fake BKK backend with the default feeds and reference tables."""
    return FakeBackend()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def services(settings: Settings, backend: FakeBackend, clock: FakeClock) -> BkkServices:
    """Service graph wired to the fake backend."""
    return BkkServices.create(settings, transport=backend.transport, clock=clock)


@pytest.fixture
async def client(services: BkkServices) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing, with the app bound to the fake backend."""
    app.state.bkk = services
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.state.bkk = None
