from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from haroo.models.domain.user_domain import UserSummary


class ConnectionStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE_PERIOD = "ACTIVE_PERIOD"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    BLOCKED = "BLOCKED"
    CANCELED = "CANCELED"


LIVE_STATUSES = frozenset({ConnectionStatus.PENDING, ConnectionStatus.ACTIVE_PERIOD})

ALLOWED_DURATIONS = (1, 3)


class Connection(BaseModel):
    """One message mode between an initiator (who paid) and a recipient."""

    id: str
    initiator_id: str
    recipient_id: str
    status: ConnectionStatus = ConnectionStatus.PENDING
    duration_days: int

    # Active period, set on acceptance
    start_date: datetime | None = None
    end_date: datetime | None = None

    # Pending request window
    requested_at: datetime | None = None
    expires_at: datetime | None = None
    reminder_sent: bool = False
    reminder_sent_at: datetime | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    def involves(self, user_id: str) -> bool:
        return user_id in (self.initiator_id, self.recipient_id)

    def partner_of(self, user_id: str) -> str:
        return self.recipient_id if user_id == self.initiator_id else self.initiator_id

    def is_overdue(self, now: datetime) -> bool:
        """Live row whose pending window or active period has already run out."""
        if self.status == ConnectionStatus.PENDING:
            return self.expires_at is not None and now > self.expires_at
        if self.status == ConnectionStatus.ACTIVE_PERIOD:
            return self.end_date is not None and now > self.end_date
        return False


class ConnectionView(BaseModel):
    """Connection joined with both parties' summaries for the current-mode read."""

    id: str
    status: ConnectionStatus
    duration_days: int
    start_date: datetime | None = None
    end_date: datetime | None = None
    requested_at: datetime | None = None
    expires_at: datetime | None = None
    initiator: UserSummary
    recipient: UserSummary
    is_initiator: bool
    can_send_today: bool | None = None

    @classmethod
    def build(
        cls,
        connection: Connection,
        initiator: UserSummary,
        recipient: UserSummary,
        viewer_id: str,
        can_send_today: bool | None = None,
    ) -> "ConnectionView":
        return cls(
            id=connection.id,
            status=connection.status,
            duration_days=connection.duration_days,
            start_date=connection.start_date,
            end_date=connection.end_date,
            requested_at=connection.requested_at,
            expires_at=connection.expires_at,
            initiator=initiator,
            recipient=recipient,
            is_initiator=connection.initiator_id == viewer_id,
            can_send_today=can_send_today,
        )
