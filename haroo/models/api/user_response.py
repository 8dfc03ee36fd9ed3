# haroo/models/api/user_response.py
from datetime import datetime

from pydantic import BaseModel

from haroo.models.domain.trace_domain import WritePermission


class UserStatusResponse(BaseModel):
    """Profile plus trace quota state for the authenticated user."""

    user_id: str
    hash_id: str | None = None
    status: str
    blocked_user_ids: list[str]
    write_permission: WritePermission
    next_available_at: datetime | None = None
    trace_pass_expires_at: datetime | None = None
    trace_daily_count: int
    report_influence: float
    push_enabled: bool


class BlockListResponse(BaseModel):
    blocked_user_ids: list[str]
