from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from haroo.models.domain.trace_domain import PermissionDecision


class UserState(BaseModel):
    """User identity plus the per-user counters the core decides on."""

    id: str
    hash_id: str | None = None
    status: Literal["ACTIVE", "INACTIVE", "BANNED"] = "ACTIVE"
    blocked_user_ids: list[str] = Field(default_factory=list)
    fcm_token: str | None = None

    # Trace quota state
    trace_daily_count: int = 0
    last_trace_at: datetime | None = None
    trace_pass_expires_at: datetime | None = None
    report_influence: float = 1.0

    created_at: datetime | None = None
    updated_at: datetime | None = None

    def has_blocked(self, other_id: str) -> bool:
        return other_id in self.blocked_user_ids


class UserSummary(BaseModel):
    """Public face of a user embedded in connection reads."""

    user_id: str
    hash_id: str | None = None
    status: str = "ACTIVE"


class UserStatus(BaseModel):
    """Profile plus the trace write decision evaluated at read time."""

    user: UserState
    permission: PermissionDecision
