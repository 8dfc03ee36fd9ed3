"""
Traces: short location-bucketed notes with a free daily quota and a paid pass.

Service layer returns domain models only - API layer handles HTTP concerns.
"""

from datetime import timedelta

from haroo.infrastructure.clock import Clock
from haroo.infrastructure.observability.logging import get_logger
from haroo.models.domain.trace_domain import (
    GridCell,
    PassTier,
    PermissionDecision,
    ToneTag,
    Trace,
    TracePage,
    TraceStatus,
    TraceView,
    WritePermission,
)
from haroo.models.domain.user_domain import UserState
from haroo.repositories.base import DuplicateReport, StaleWrite, TraceRepository, UserRepository
from haroo.services.errors import ConflictError, ForbiddenError, InvalidArgumentError, NotFoundError
from haroo.services.trace_permission import resolve_write_permission
from haroo.services.user_service import ensure_user

logger = get_logger(__name__)

TRACE_MAX_LENGTH = 60
TRACE_TTL = timedelta(hours=72)
REPORT_HIDE_THRESHOLD = 3.0
REPORT_REASON_MAX_LENGTH = 200
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50

PASS_DURATIONS = {
    PassTier.SINGLE: timedelta(hours=24),
    PassTier.THREE_DAY: timedelta(hours=48),
}
# A fresh pass starts outside the write cooldown
PASS_COOLDOWN_BACKDATE = timedelta(hours=3)

_DENIAL_REASONS = {
    WritePermission.FREE_USED: ("Today's free trace has been used", "free_used"),
    WritePermission.DENIED_COOLDOWN: ("Trace writing is cooling down", "cooldown"),
}


def _validate_location(lat: float, lng: float) -> None:
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lng <= 180.0:
        raise InvalidArgumentError(
            "Location is out of range", "invalid_location", {"lat": lat, "lng": lng}
        )


class TraceService:
    def __init__(
        self,
        traces: TraceRepository,
        users: UserRepository,
        clock: Clock,
        moderator_ids: set[str] | None = None,
        mock_payments_enabled: bool = True,
    ):
        self.traces = traces
        self.users = users
        self.clock = clock
        self.moderator_ids = moderator_ids or set()
        self.mock_payments_enabled = mock_payments_enabled

    async def _load_user(self, user_id: str) -> UserState:
        return await ensure_user(self.users, user_id)

    # ------------------------------------------------------------------
    # Permission and writes
    # ------------------------------------------------------------------

    async def resolve_permission(self, user_id: str) -> PermissionDecision:
        user = await self.users.get(user_id) or UserState(id=user_id)
        return resolve_write_permission(user, self.clock.now(), self.clock.tz)

    async def write(
        self, user_id: str, content: str, tone_tag: ToneTag | str, lat: float, lng: float
    ) -> Trace:
        """
        Write a trace at the user's location.

        Raises:
            InvalidArgumentError: empty or oversized content, unknown tone, bad location
            ForbiddenError: free quota used (free_used) or pass cooldown (cooldown)
            ConflictError: another write from the same user landed first
        """
        if not content or not content.strip():
            raise InvalidArgumentError("Trace content is required", "content_required")
        if len(content) > TRACE_MAX_LENGTH:
            raise InvalidArgumentError(
                f"Trace content is limited to {TRACE_MAX_LENGTH} characters",
                "content_too_long",
                {"max_length": TRACE_MAX_LENGTH},
            )
        try:
            tone = ToneTag(tone_tag)
        except ValueError as e:
            raise InvalidArgumentError(
                "Unknown tone tag", "invalid_tone_tag", {"tone_tag": str(tone_tag)}
            ) from e
        _validate_location(lat, lng)

        user = await self._load_user(user_id)
        now = self.clock.now()
        decision = resolve_write_permission(user, now, self.clock.tz)

        if not decision.allowed:
            message, reason = _DENIAL_REASONS[decision.state]
            details = {"permission": decision.state.value}
            if decision.next_available_at:
                details["next_available_at"] = decision.next_available_at.isoformat()
            logger.info("Trace write denied", user_id=user_id, reason=reason)
            raise ForbiddenError(message, reason, details)

        cell = GridCell.from_location(lat, lng)
        try:
            trace = await self.traces.record_write(
                {
                    "content": content,
                    "tone_tag": tone.value,
                    "lat": lat,
                    "lng": lng,
                    "grid_x": cell.x,
                    "grid_y": cell.y,
                    "created_at": now,
                    "expires_at": now + TRACE_TTL,
                },
                author_id=user_id,
                expected_last_trace_at=user.last_trace_at,
                new_daily_count=decision.effective_daily_count + 1,
            )
        except StaleWrite as e:
            raise ConflictError(
                "Another trace write is in progress", "concurrent_write"
            ) from e

        logger.info(
            "Trace written",
            trace_id=trace.id,
            user_id=user_id,
            permission=decision.state.value,
            grid_x=cell.x,
            grid_y=cell.y,
        )
        return trace

    async def mock_payment(self, user_id: str, tier: PassTier | str) -> UserState:
        """
        Grant a trace pass without a store purchase.

        last_trace_at is moved to three hours ago so the new pass is usable at
        once; this is the only path allowed to rewrite it.
        """
        if not self.mock_payments_enabled:
            raise ForbiddenError("Mock payments are disabled", "mock_payments_disabled")
        try:
            pass_tier = PassTier(tier)
        except ValueError as e:
            raise InvalidArgumentError(
                "Unknown pass tier", "invalid_tier", {"tier": str(tier)}
            ) from e

        await self._load_user(user_id)
        now = self.clock.now()
        user = await self.users.set_trace_pass(
            user_id,
            expires_at=now + PASS_DURATIONS[pass_tier],
            last_trace_at=now - PASS_COOLDOWN_BACKDATE,
        )
        if not user:
            raise NotFoundError("User not found", "user_not_found")

        logger.info(
            "Trace pass granted",
            user_id=user_id,
            tier=pass_tier.value,
            expires_at=user.trace_pass_expires_at.isoformat(),
        )
        return user

    async def reset_quota(self, user_id: str) -> UserState:
        user = await self.users.reset_trace_state(user_id)
        if not user:
            raise NotFoundError("User not found", "user_not_found")
        logger.info("Trace quota reset", user_id=user_id)
        return user

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_nearby(
        self, viewer_id: str, lat: float, lng: float, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> TracePage:
        _validate_location(lat, lng)
        if page < 1:
            raise InvalidArgumentError("page starts at 1", "invalid_page", {"page": page})
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise InvalidArgumentError(
                f"page_size must be between 1 and {MAX_PAGE_SIZE}",
                "invalid_page_size",
                {"page_size": page_size},
            )

        cell = GridCell.from_location(lat, lng)
        traces = await self.traces.list_in_cell(
            cell, self.clock.now(), skip=(page - 1) * page_size, limit=page_size
        )
        return TracePage(
            grid=cell,
            page=page,
            page_size=page_size,
            traces=[TraceView.build(t, viewer_id, viewer_id in t.liked_by) for t in traces],
        )

    async def get(self, trace_id: str, viewer_id: str) -> TraceView:
        trace = await self.traces.get(trace_id)
        if not trace or trace.status != TraceStatus.ACTIVE or trace.expires_at <= self.clock.now():
            raise NotFoundError("Trace not found", "trace_not_found")
        return TraceView.build(trace, viewer_id, viewer_id in trace.liked_by)

    # ------------------------------------------------------------------
    # Likes, reports, removal
    # ------------------------------------------------------------------

    async def _require(self, trace_id: str) -> Trace:
        trace = await self.traces.get(trace_id)
        if not trace or trace.status == TraceStatus.REMOVED:
            raise NotFoundError("Trace not found", "trace_not_found")
        return trace

    async def like(self, trace_id: str, user_id: str) -> int:
        """Idempotent; returns the like count after the call."""
        await self._require(trace_id)
        await self._load_user(user_id)
        count = await self.traces.like(trace_id, user_id)
        if count is None:
            raise NotFoundError("Trace not found", "trace_not_found")
        return count

    async def unlike(self, trace_id: str, user_id: str) -> int:
        await self._require(trace_id)
        await self._load_user(user_id)
        count = await self.traces.unlike(trace_id, user_id)
        if count is None:
            raise NotFoundError("Trace not found", "trace_not_found")
        return count

    async def report(self, trace_id: str, reporter_id: str, reason: str) -> Trace:
        """
        Record a report and add the reporter's influence to the trace score.

        Reaching REPORT_HIDE_THRESHOLD hides the trace; hiding never reverts
        on its own.
        """
        if not reason or not reason.strip():
            raise InvalidArgumentError("A report reason is required", "reason_required")
        reason = reason.strip()[:REPORT_REASON_MAX_LENGTH]

        await self._require(trace_id)
        reporter = await self._load_user(reporter_id)
        influence = reporter.report_influence

        try:
            trace = await self.traces.add_report(
                trace_id, reporter_id, reason, influence, REPORT_HIDE_THRESHOLD
            )
        except DuplicateReport as e:
            raise ConflictError("You have already reported this trace", "already_reported") from e

        if not trace:
            raise NotFoundError("Trace not found", "trace_not_found")

        logger.info(
            "Trace reported",
            trace_id=trace.id,
            reporter_id=reporter_id,
            report_score=trace.report_score,
            status=trace.status.value,
        )
        return trace

    async def delete(self, trace_id: str, user_id: str) -> Trace:
        trace = await self.traces.get(trace_id)
        if not trace:
            raise NotFoundError("Trace not found", "trace_not_found")
        if trace.author_id != user_id:
            raise ForbiddenError("Only the author can delete this trace", "not_author")
        if trace.status == TraceStatus.REMOVED:
            return trace

        removed = await self.traces.set_status(trace.id, TraceStatus.REMOVED)
        logger.info("Trace deleted", trace_id=trace.id, user_id=user_id)
        return removed or trace

    async def moderator_remove(self, trace_id: str, moderator_id: str, reason: str | None = None) -> Trace:
        if moderator_id not in self.moderator_ids:
            raise ForbiddenError("Moderator permission required", "not_moderator")

        trace = await self.traces.get(trace_id)
        if not trace:
            raise NotFoundError("Trace not found", "trace_not_found")

        removed = await self.traces.set_status(trace.id, TraceStatus.REMOVED)
        logger.warning(
            "Trace removed by moderator",
            trace_id=trace.id,
            moderator_id=moderator_id,
            reason=reason,
            previous_status=trace.status.value,
        )
        return removed or trace

    async def purge_expired(self) -> int:
        return await self.traces.purge_expired(self.clock.now())
