"""
Service wiring.

One Container per process holds the clock, the repositories and the
services built on them. Routes reach services through the get_* FastAPI
dependencies below, which tests replace via app.dependency_overrides. The
cleanup job uses the same container so the sweep and the request paths
share one clock.
"""

from haroo.config import settings
from haroo.infrastructure.clock import Clock, OffsetClock, SystemClock
from haroo.repositories.base import (
    ConnectionRepository,
    MessageRepository,
    PushLogRepository,
    TraceRepository,
    UserRepository,
)
from haroo.repositories.connection_repository import PostgresConnectionRepository
from haroo.repositories.message_repository import PostgresMessageRepository
from haroo.repositories.push_log_repository import PostgresPushLogRepository
from haroo.repositories.trace_repository import PostgresTraceRepository
from haroo.repositories.user_repository import PostgresUserRepository
from haroo.services.connection_service import ConnectionService
from haroo.services.message_service import MessageService
from haroo.services.notifications import NotificationPort, build_push_service
from haroo.services.payments import PaymentVerificationPort, build_payment_verifier
from haroo.services.trace_service import TraceService
from haroo.services.user_service import UserService


class Container:
    def __init__(
        self,
        clock: Clock,
        users: UserRepository,
        connections: ConnectionRepository,
        messages: MessageRepository,
        traces: TraceRepository,
        push_logs: PushLogRepository,
        notifier: NotificationPort | None = None,
        payments: PaymentVerificationPort | None = None,
        moderator_ids: set[str] | None = None,
        mock_payments_enabled: bool = True,
    ):
        self.clock = clock
        self.users = users
        self.connections = connections
        self.messages = messages
        self.traces = traces
        self.push_logs = push_logs
        self.notifier = notifier or build_push_service(users, push_logs)
        self.payments = payments or build_payment_verifier()

        self.connection_service = ConnectionService(
            connections, messages, users, self.notifier, self.payments, clock
        )
        self.message_service = MessageService(connections, messages, self.notifier, clock)
        self.trace_service = TraceService(
            traces,
            users,
            clock,
            moderator_ids=moderator_ids,
            mock_payments_enabled=mock_payments_enabled,
        )
        self.user_service = UserService(users, clock)


def build_clock() -> Clock:
    # The offset clock is only reachable when APP_MODE=TEST
    if settings.is_test_mode():
        return OffsetClock(tz=settings.tzinfo())
    return SystemClock(tz=settings.tzinfo())


def build_container() -> Container:
    return Container(
        clock=build_clock(),
        users=PostgresUserRepository(),
        connections=PostgresConnectionRepository(),
        messages=PostgresMessageRepository(),
        traces=PostgresTraceRepository(),
        push_logs=PostgresPushLogRepository(),
        moderator_ids=settings.moderator_ids(),
        mock_payments_enabled=settings.MOCK_PAYMENTS_ENABLED,
    )


container = build_container()


def get_container() -> Container:
    return container


def get_connection_service() -> ConnectionService:
    return container.connection_service


def get_message_service() -> MessageService:
    return container.message_service


def get_trace_service() -> TraceService:
    return container.trace_service


def get_user_service() -> UserService:
    return container.user_service
