import re
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from authflow.core.config import Settings
from authflow.core.database import close_db, create_engine, create_session_maker, init_db
from authflow.main import build_auth_service, create_app
from authflow.services.users import UserStore

_CODE_RE = re.compile(r"code is: (\d+)")


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class RecordingMailer:
    """Keeps every message instead of sending it."""

    def __init__(self):
        self.outbox = []

    async def send(self, to: str, subject: str, body: str) -> None:
        self.outbox.append((to, subject, body))

    def messages_to(self, to: str):
        return [m for m in self.outbox if m[0] == to]

    def last_code(self, to: str) -> str:
        for recipient, _, body in reversed(self.outbox):
            if recipient == to:
                return _CODE_RE.search(body).group(1)
        raise AssertionError(f"No email sent to {to}")


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'authflow-test.db'}",
        jwt_access_secret="access-secret-for-tests-only",
        jwt_refresh_secret="refresh-secret-for-tests-only",
        # Cheapest Argon2 parameters the settings allow
        hash_time_cost=1,
        hash_memory_cost=8192,
        hash_parallelism=1,
        rate_limit_max_requests=1000,
    )


@pytest.fixture
async def session_factory(settings):
    engine = create_engine(settings.database_url)
    await init_db(engine)
    yield create_session_maker(engine)
    await close_db(engine)


@pytest.fixture
def store(session_factory):
    return UserStore(session_factory)


@pytest.fixture
def service(settings, session_factory, mailer, clock):
    return build_auth_service(settings, session_factory, mailer, clock)


@pytest.fixture
def client(settings, mailer, clock):
    app = create_app(settings=settings, mailer=mailer, clock=clock)
    with TestClient(app) as test_client:
        yield test_client
