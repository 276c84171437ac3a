"""
Pytest configuration and core fixtures.

Tests run against a file-backed SQLite database through the application's own
engine and session factory, so services open and commit their transactions
exactly as they do in production. All tables are dropped and recreated for
every test.

Run all tests:
    pytest -v
"""

import os
import tempfile
from pathlib import Path
from typing import Any, AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

_TEST_DB_DIR = Path(tempfile.mkdtemp(prefix="ruramed-auth-tests-"))

DEFAULT_PASSWORD = "Secret123"


def pytest_configure(config):
    """Point the settings at the test database before the app is imported."""
    os.environ["ENVIRONMENT"] = "test"
    os.environ["DEBUG"] = "false"
    os.environ["SENTRY_DSN"] = ""
    os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR / 'test.db'}"
    os.environ["RATE_LIMIT_ENABLED"] = "false"
    os.environ["RATE_LIMIT_BACKEND"] = "memory"
    os.environ["USER_CACHE_BACKEND"] = "memory"
    os.environ["BCRYPT_ROUNDS"] = "4"
    os.environ["ENABLE_SCHEDULER"] = "false"
    os.environ["ENABLE_MESSAGING"] = "false"


class RecordingPublisher:
    """Event publisher that keeps every event in memory."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any], dict[str, Any] | None]] = []
        self.fail_with: Exception | None = None

    async def __call__(
        self,
        queue_name: str,
        event: dict[str, Any],
        headers: dict[str, Any] | None = None,
    ) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.events.append((queue_name, event, headers))

    def for_queue(self, queue_name: str) -> list[dict[str, Any]]:
        return [event for queue, event, _ in self.events if queue == queue_name]

    def last_otp(self, email: str | None = None) -> str:
        """Code of the most recent OTP event, optionally for one recipient."""
        from app.core.services.otp import OTP_QUEUE

        events = [
            event
            for event in self.for_queue(OTP_QUEUE)
            if email is None or event["email"] == email
        ]
        assert events, "no OTP was published"
        return events[-1]["otp_code"]


@pytest.fixture(autouse=True)
def reset_global_state():
    """Clear rate limit counters and the registered publisher around each test."""
    from app.core.services.event_publisher import reset_publisher
    from app.core.services.rate_limit import reset_memory_backend

    reset_memory_backend()
    reset_publisher()
    yield
    reset_memory_backend()
    reset_publisher()


@pytest.fixture
async def db_engine():
    """Recreate every table on the application engine."""
    import app.core.db.models  # noqa: F401
    from app.core.db import Base, async_engine

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield async_engine

    # Pooled connections are bound to this test's event loop
    await async_engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    """A fresh session from the application's session factory."""
    from app.core.db import AsyncSessionLocal

    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
def publisher() -> RecordingPublisher:
    from app.core.services.event_publisher import register_publisher

    recorder = RecordingPublisher()
    register_publisher(recorder)
    return recorder


@pytest.fixture
async def user_cache():
    from app.core.services.user_cache import UserSnapshotCache

    cache = UserSnapshotCache(backend="memory", ttl_seconds=300, sweep_interval_seconds=3600)
    await cache.start()
    yield cache
    await cache.stop()


@pytest.fixture
async def client(db_engine, user_cache, publisher) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the app. The lifespan does not run; its state is set here."""
    from app.main import app

    app.state.user_cache = user_cache
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac


@pytest.fixture
def device():
    from app.core.services.session import DeviceInfo

    return DeviceInfo(
        fingerprint="test-device",
        browser="Chrome",
        os="Linux",
        device="desktop",
        ip="127.0.0.1",
        user_agent="pytest",
    )


@pytest.fixture
def make_user(db_engine):
    """Factory inserting a user directly, bypassing registration."""
    from app.core.db import AsyncSessionLocal
    from app.core.db.crud import user_db
    from app.core.enums import UserRole
    from app.core.utils import hash_password

    async def _make_user(
        email: str = "asha@example.com",
        phone: str | None = "9876543210",
        password: str = DEFAULT_PASSWORD,
        name: str = "Asha Rao",
        role: UserRole = UserRole.USER,
        is_active: bool = True,
    ):
        async with AsyncSessionLocal() as session:
            async with session.begin():
                return await user_db.create(
                    session,
                    {
                        "name": name,
                        "email": email,
                        "phone": phone,
                        "password_hash": hash_password(password),
                        "role": role,
                        "is_active": is_active,
                    },
                    commit_self=False,
                )

    return _make_user


@pytest.fixture
def login(client):
    """Log in through the API and return the token response body."""

    async def _login(
        identifier: str = "asha@example.com",
        password: str = DEFAULT_PASSWORD,
        fingerprint: str | None = None,
        session_id: str | None = None,
    ) -> dict[str, Any]:
        headers = {}
        if fingerprint:
            headers["X-Device-Fingerprint"] = fingerprint
        if session_id:
            headers["X-Session-ID"] = session_id
        response = await client.post(
            "/auth/login",
            json={"identifier": identifier, "password": password},
            headers=headers,
        )
        assert response.status_code == 200, response.text
        return response.json()

    return _login


def _auth_headers(tokens: dict[str, Any], with_session: bool = True) -> dict[str, str]:
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}
    if with_session:
        headers["X-Session-ID"] = tokens["session_id"]
    return headers


@pytest.fixture
def auth_headers():
    """Build the Authorization and X-Session-ID headers from a token response."""
    return _auth_headers
