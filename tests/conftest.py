"""
Shared fixtures: a controllable clock, an opened store on a temp file, and an
HTTP client bound to an app whose container is already started.
"""

from datetime import datetime, timedelta, timezone

import pytest
import structlog
from httpx import ASGITransport, AsyncClient

from hookcatch.container import Container
from hookcatch.core.config import Settings
from hookcatch.core.store import EventStore
from hookcatch.main import create_app


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo any structlog configuration a test (e.g. a CLI run) applied."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def store(tmp_path, clock):
    s = EventStore(str(tmp_path / "webhooks.db"), clock=clock)
    await s.open()
    yield s
    await s.close()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_path=str(tmp_path / "api.db"),
        listener_queue_size=10,
        ngrok_api_url="http://127.0.0.1:9/api/tunnels",
    )


@pytest.fixture
async def container(settings, clock):
    c = Container(settings, clock=clock)
    await c.start()
    yield c
    await c.stop()


@pytest.fixture
async def client(settings, container):
    app = create_app(settings, container)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
