"""
Trace write permission rules.

Pure functions over a user's quota state and an instant; the service layer
feeds them the clock's now() so the same rules drive the permission read,
the write path and the user status read.
"""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from haroo.infrastructure.clock import local_date
from haroo.models.domain.trace_domain import PermissionDecision, WritePermission
from haroo.models.domain.user_domain import UserState

TRACE_COOLDOWN = timedelta(hours=2)
FREE_TRACES_PER_DAY = 1


def has_valid_pass(user: UserState, now: datetime) -> bool:
    return user.trace_pass_expires_at is not None and user.trace_pass_expires_at > now


def effective_daily_count(user: UserState, now: datetime, tz: ZoneInfo) -> int:
    """Stored counter, or 0 when the last write fell on an earlier local day."""
    if user.last_trace_at is None:
        return 0
    if local_date(user.last_trace_at, tz) != local_date(now, tz):
        return 0
    return user.trace_daily_count


def resolve_write_permission(user: UserState, now: datetime, tz: ZoneInfo) -> PermissionDecision:
    """
    Decide whether the user may write a trace at `now`.

    With a valid pass the only limit is the cooldown since the last write. A
    last write in the future (negative elapsed time) does not start a
    cooldown. Without a pass the user gets one free write per local day.
    """
    daily = effective_daily_count(user, now, tz)

    if has_valid_pass(user, now):
        if user.last_trace_at is not None:
            elapsed = now - user.last_trace_at
            if timedelta(0) <= elapsed < TRACE_COOLDOWN:
                return PermissionDecision(
                    state=WritePermission.DENIED_COOLDOWN,
                    next_available_at=user.last_trace_at + TRACE_COOLDOWN,
                    effective_daily_count=daily,
                )
        return PermissionDecision(state=WritePermission.PAID_AVAILABLE, effective_daily_count=daily)

    if daily >= FREE_TRACES_PER_DAY:
        return PermissionDecision(state=WritePermission.FREE_USED, effective_daily_count=daily)

    return PermissionDecision(state=WritePermission.FREE_AVAILABLE, effective_daily_count=daily)
