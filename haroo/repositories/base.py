"""
Storage contracts for the core services.

Services depend on these protocols only. Each protocol documents which
operations are conditional writes: those must be atomic in the backing
store (constraint or compare-and-set), never a read followed by a write.
"""

from datetime import date, datetime
from typing import Any, Protocol

from haroo.db.helpers import DatabaseError
from haroo.models.domain.connection_domain import Connection, ConnectionStatus
from haroo.models.domain.message_domain import Message
from haroo.models.domain.trace_domain import GridCell, Trace, TraceStatus
from haroo.models.domain.user_domain import UserState, UserSummary


class LiveSlotTaken(DatabaseError):
    """A user already holds a live connection slot."""

    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} already has a live connection", operation="create_pending")
        self.user_id = user_id


class DuplicateDailyMessage(DatabaseError):
    def __init__(self, connection_id: str, sender_id: str, day: date):
        super().__init__(
            f"Message already sent on {day.isoformat()} in {connection_id}", operation="create_message"
        )
        self.connection_id = connection_id
        self.sender_id = sender_id
        self.day = day


class DuplicateReport(DatabaseError):
    def __init__(self, trace_id: str, reporter_id: str):
        super().__init__(f"Trace {trace_id} already reported by {reporter_id}", operation="add_report")
        self.trace_id = trace_id
        self.reporter_id = reporter_id


class StaleWrite(DatabaseError):
    """The row changed between the read that justified a write and the write itself."""


class UserRepository(Protocol):
    async def get(self, user_id: str) -> UserState | None: ...

    async def ensure(self, user_id: str, hash_id: str | None = None) -> UserState: ...

    async def get_summaries(self, user_ids: list[str]) -> dict[str, UserSummary]: ...

    async def add_block(self, user_id: str, blocked_id: str) -> UserState | None: ...

    async def remove_block(self, user_id: str, blocked_id: str) -> UserState | None: ...

    async def set_trace_pass(
        self, user_id: str, expires_at: datetime, last_trace_at: datetime
    ) -> UserState | None: ...

    async def reset_trace_state(self, user_id: str) -> UserState | None: ...

    async def set_fcm_token(self, user_id: str, token: str) -> UserState | None: ...


class ConnectionRepository(Protocol):
    async def get(self, connection_id: str) -> Connection | None: ...

    async def find_live_for_user(
        self, user_id: str, exclude_id: str | None = None
    ) -> Connection | None: ...

    async def find_active_for_user(self, user_id: str) -> Connection | None: ...

    async def create_pending(
        self,
        initiator_id: str,
        recipient_id: str,
        duration_days: int,
        requested_at: datetime,
        expires_at: datetime,
    ) -> Connection:
        """Insert a PENDING row and claim both live slots atomically; raises LiveSlotTaken."""
        ...

    async def activate(
        self, connection_id: str, start_date: datetime, end_date: datetime
    ) -> Connection | None:
        """PENDING -> ACTIVE_PERIOD only while both parties' slots still point here."""
        ...

    async def transition(
        self, connection_id: str, from_status: ConnectionStatus, to_status: ConnectionStatus
    ) -> Connection | None:
        """Compare-and-set on status; terminal targets release both live slots."""
        ...

    async def list_overdue(self, now: datetime) -> list[Connection]: ...

    async def list_reminder_candidates(self, requested_before: datetime, now: datetime) -> list[Connection]: ...

    async def mark_reminder_sent(self, connection_id: str, sent_at: datetime) -> bool: ...


class MessageRepository(Protocol):
    async def get(self, message_id: str) -> Message | None: ...

    async def create(
        self,
        connection_id: str,
        sender_id: str,
        content: str,
        sent_at: datetime,
        sent_day: date,
        expires_at: datetime,
    ) -> Message:
        """Raises DuplicateDailyMessage on (connection, sender, day) collision."""
        ...

    async def find_for_day(self, connection_id: str, sender_id: str, day: date) -> Message | None: ...

    async def mark_read(self, message_id: str) -> Message | None: ...

    async def expire_overdue(self, now: datetime) -> int: ...

    async def purge_expired(self, expired_before: datetime) -> int: ...


class TraceRepository(Protocol):
    async def get(self, trace_id: str) -> Trace | None: ...

    async def record_write(
        self,
        trace: dict[str, Any],
        author_id: str,
        expected_last_trace_at: datetime | None,
        new_daily_count: int,
    ) -> Trace:
        """Insert the trace and update author counters in one transaction; raises StaleWrite."""
        ...

    async def list_in_cell(
        self, cell: GridCell, now: datetime, skip: int, limit: int
    ) -> list[Trace]: ...

    async def like(self, trace_id: str, user_id: str) -> int | None: ...

    async def unlike(self, trace_id: str, user_id: str) -> int | None: ...

    async def add_report(
        self, trace_id: str, reporter_id: str, reason: str, influence: float, hide_threshold: float
    ) -> Trace | None:
        """Raises DuplicateReport when the pair already exists."""
        ...

    async def set_status(self, trace_id: str, status: TraceStatus) -> Trace | None: ...

    async def purge_expired(self, now: datetime) -> int: ...


class PushLogRepository(Protocol):
    async def record(
        self, user_id: str, title: str, body: str, data: dict[str, Any], delivered: bool
    ) -> None: ...

    async def latest_for_users(self, user_ids: list[str]) -> dict[str, Any] | None: ...
