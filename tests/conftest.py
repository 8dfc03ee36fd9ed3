from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

from haroo.auth.verify import Principal, auth_dependency
from haroo.dependencies import (
    Container,
    get_connection_service,
    get_container,
    get_message_service,
    get_trace_service,
    get_user_service,
)
from haroo.infrastructure.clock import OffsetClock
from haroo.main import app
from haroo.middleware.rate_limit_dependencies import rate_limit_user_only
from tests.fakes import (
    MODERATOR_ID,
    FakeConnectionRepository,
    FakeMessageRepository,
    FakePushLogRepository,
    FakeRedisClient,
    FakeTraceRepository,
    FakeUserRepository,
    RecordingNotifier,
    ScriptedVerifier,
)

SEOUL = ZoneInfo("Asia/Seoul")

# 2025-03-10 12:00 in Seoul
BASE_TIME = datetime(2025, 3, 10, 3, 0, tzinfo=UTC)


@pytest.fixture
def clock():
    return OffsetClock(tz=SEOUL, base=lambda: BASE_TIME)


@pytest.fixture
def users():
    repo = FakeUserRepository()
    for user_id in ("alice", "bob", "carol", "dave", MODERATOR_ID):
        repo.add(user_id)
    return repo


@pytest.fixture
def connections(users):
    return FakeConnectionRepository(users)


@pytest.fixture
def messages():
    return FakeMessageRepository()


@pytest.fixture
def traces(users):
    return FakeTraceRepository(users)


@pytest.fixture
def push_logs():
    return FakePushLogRepository()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def verifier():
    return ScriptedVerifier()


@pytest.fixture
def container(clock, users, connections, messages, traces, push_logs, notifier, verifier):
    return Container(
        clock=clock,
        users=users,
        connections=connections,
        messages=messages,
        traces=traces,
        push_logs=push_logs,
        notifier=notifier,
        payments=verifier,
        moderator_ids={MODERATOR_ID},
    )


@pytest.fixture
def auth_override():
    def _override():
        return Principal(user_id="alice")

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app, user_id: str | None = None):
        if user_id is None:
            app.dependency_overrides[auth_dependency] = auth_override
        else:
            app.dependency_overrides[auth_dependency] = lambda: Principal(user_id=user_id)

    return _apply


@pytest.fixture
def fake_redis():
    return FakeRedisClient()


@pytest.fixture
def api(container, apply_auth_override):
    """TestClient over the real app, wired to the in-memory container."""
    app.dependency_overrides[get_container] = lambda: container
    app.dependency_overrides[get_connection_service] = lambda: container.connection_service
    app.dependency_overrides[get_message_service] = lambda: container.message_service
    app.dependency_overrides[get_trace_service] = lambda: container.trace_service
    app.dependency_overrides[get_user_service] = lambda: container.user_service
    app.dependency_overrides[rate_limit_user_only] = lambda: None
    apply_auth_override(app)

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def login(apply_auth_override):
    """Switch the authenticated caller for subsequent requests."""

    def _login(user_id: str):
        apply_auth_override(app, user_id)

    return _login
