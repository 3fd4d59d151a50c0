"""Pytest configuration and fixtures."""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from musicask.config import MusicAskSettings
from musicask.persistence import MemoryGateway
from musicask.realtime.broadcaster import Broadcaster, reset_broadcaster
from musicask.services import event_service as event_service_module
from musicask.services.event_service import EventService, reset_service
from musicask.services.search import TrackSearchClient


def pytest_configure(config):
    """Ensure asyncio_mode is auto so async fixtures work when pyproject is not in cwd."""
    if hasattr(config.option, "asyncio_mode") and config.option.asyncio_mode is None:
        config.option.asyncio_mode = "auto"
    logging.getLogger("httpcore").setLevel(logging.CRITICAL)


class FakeClock:
    """Deterministic millisecond clock; every reading advances by ``step``."""

    def __init__(self, start: int = 1_700_000_000_000, step: int = 1000) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> int:
        value = self.now
        self.now += self.step
        return value


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Reset the service and broadcaster singletons between tests."""
    yield
    reset_service()
    reset_broadcaster()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def unconfigured_settings() -> MusicAskSettings:
    """Settings with no Spotify credentials, whatever the environment says."""
    return MusicAskSettings(spotify_client_id=None, spotify_client_secret=None)


@pytest.fixture
def gateway() -> MemoryGateway:
    return MemoryGateway()


@pytest.fixture
def broadcaster() -> Broadcaster:
    return Broadcaster(queue_size=16)


@pytest.fixture
def service(
    gateway: MemoryGateway,
    broadcaster: Broadcaster,
    clock: FakeClock,
    unconfigured_settings: MusicAskSettings,
) -> EventService:
    return EventService(
        gateway=gateway,
        broadcaster=broadcaster,
        search_client=TrackSearchClient(config=unconfigured_settings),
        clock=clock,
    )


@pytest.fixture
def installed_service(service: EventService, monkeypatch: pytest.MonkeyPatch) -> EventService:
    """Make ``service`` the process singleton that routes and lifespan resolve."""
    monkeypatch.setattr(event_service_module, "_service", service)
    return service


@pytest_asyncio.fixture
async def client(installed_service: EventService) -> AsyncIterator[AsyncClient]:
    """Async HTTP client bound to the app, backed by the in-memory service."""
    from musicask.app import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await installed_service.drain()
