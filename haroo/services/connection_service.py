"""
Message mode lifecycle.

PENDING -> ACTIVE_PERIOD -> EXPIRED, or PENDING -> REJECTED / BLOCKED /
CANCELED / EXPIRED. A user is party to at most one live (PENDING or
ACTIVE_PERIOD) mode at a time. The checks here give precise errors to the
caller; the repository's live-slot claim and conditional updates are what
actually hold the invariant under concurrent requests.

Overdue live modes are expired lazily whenever they are read for a
decision, so correctness never waits on the cleanup sweep.
"""

from datetime import timedelta

from haroo.infrastructure.clock import Clock, today
from haroo.infrastructure.observability.logging import get_logger
from haroo.models.domain.connection_domain import (
    ALLOWED_DURATIONS,
    Connection,
    ConnectionStatus,
    ConnectionView,
)
from haroo.models.domain.user_domain import UserSummary
from haroo.repositories.base import (
    ConnectionRepository,
    LiveSlotTaken,
    MessageRepository,
    UserRepository,
)
from haroo.services.errors import (
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
    PaymentRejectedError,
)
from haroo.services.notifications import NotificationPort, TemplateKind, notify_safely
from haroo.services.payments import PaymentVerificationPort, duration_for_product
from haroo.services.user_service import ensure_user

logger = get_logger(__name__)

PENDING_REQUEST_TTL = timedelta(hours=24)
PENDING_REMINDER_AFTER = timedelta(hours=12)


class ConnectionService:
    def __init__(
        self,
        connections: ConnectionRepository,
        messages: MessageRepository,
        users: UserRepository,
        notifier: NotificationPort,
        payments: PaymentVerificationPort,
        clock: Clock,
    ):
        self.connections = connections
        self.messages = messages
        self.users = users
        self.notifier = notifier
        self.payments = payments
        self.clock = clock

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request(self, initiator_id: str, recipient_id: str, duration_days: int) -> Connection:
        """
        Create a PENDING mode from initiator to recipient and notify the recipient.

        Raises:
            InvalidArgumentError: bad duration or self-targeting
            NotFoundError: recipient does not exist
            ForbiddenError: either party has blocked the other
            ConflictError: initiator (self_busy) or recipient (peer_busy) already live
        """
        await self._check_request(initiator_id, recipient_id, duration_days)
        return await self._create_pending(initiator_id, recipient_id, duration_days)

    async def purchase(
        self,
        initiator_id: str,
        recipient_id: str,
        product_id: str,
        purchase_token: str,
        duration_days: int | None = None,
    ) -> Connection:
        """
        Payment-gated request. Every request check runs before the store is
        consulted; a rejected or inconclusive verification creates nothing.
        """
        expected = duration_for_product(product_id)
        if expected is None:
            raise InvalidArgumentError(
                f"Unknown product {product_id}", "unknown_product", {"product_id": product_id}
            )
        if duration_days is not None and duration_days != expected:
            raise InvalidArgumentError(
                "durationDays does not match productId",
                "duration_mismatch",
                {"product_id": product_id, "expected_duration_days": expected},
            )

        await self._check_request(initiator_id, recipient_id, expected)

        result = await self.payments.verify(product_id, purchase_token, initiator_id)
        if not result.valid:
            logger.warning(
                "Purchase rejected",
                initiator_id=initiator_id,
                product_id=product_id,
                detail=result.detail,
            )
            raise PaymentRejectedError(
                "Purchase could not be verified",
                "payment_rejected",
                {"detail": result.detail} if result.detail else None,
            )

        return await self._create_pending(initiator_id, recipient_id, expected)

    async def _check_request(self, initiator_id: str, recipient_id: str, duration_days: int) -> None:
        if duration_days not in ALLOWED_DURATIONS:
            raise InvalidArgumentError(
                f"durationDays must be one of {list(ALLOWED_DURATIONS)}",
                "invalid_duration",
                {"duration_days": duration_days},
            )

        recipient = await self.users.get(recipient_id)
        if not recipient:
            raise NotFoundError("Recipient not found", "recipient_not_found")

        initiator = await ensure_user(self.users, initiator_id)
        if recipient.has_blocked(initiator_id):
            raise ForbiddenError("You are blocked by this user", "blocked")
        if initiator.has_blocked(recipient_id):
            raise ForbiddenError("You have blocked this user", "blocked")

        if initiator_id == recipient_id:
            raise InvalidArgumentError("Cannot request a mode to yourself", "self_target")

        if await self._live_connection(initiator_id):
            raise ConflictError("You already have an active or pending mode", "self_busy")
        if await self._live_connection(recipient_id):
            raise ConflictError("The recipient is busy with another mode", "peer_busy")

    async def _create_pending(
        self, initiator_id: str, recipient_id: str, duration_days: int
    ) -> Connection:
        now = self.clock.now()
        try:
            connection = await self.connections.create_pending(
                initiator_id,
                recipient_id,
                duration_days,
                requested_at=now,
                expires_at=now + PENDING_REQUEST_TTL,
            )
        except LiveSlotTaken as e:
            if e.user_id == initiator_id:
                raise ConflictError(
                    "You already have an active or pending mode", "self_busy"
                ) from e
            raise ConflictError("The recipient is busy with another mode", "peer_busy") from e

        logger.info(
            "Message mode requested",
            connection_id=connection.id,
            initiator_id=initiator_id,
            recipient_id=recipient_id,
            duration_days=duration_days,
        )
        await notify_safely(
            self.notifier,
            recipient_id,
            TemplateKind.MODE_REQUESTED,
            {"mode_id": connection.id},
        )
        return connection

    # ------------------------------------------------------------------
    # Recipient responses
    # ------------------------------------------------------------------

    async def accept(self, connection_id: str, acting_user_id: str) -> Connection:
        """
        Start the active period and notify the initiator.

        Raises:
            NotFoundError: unknown mode (mode_not_found)
            ForbiddenError: caller is not the recipient (not_recipient)
            ConflictError: already answered (not_pending), request window passed
                (expired), acceptor live elsewhere (self_busy), initiator live
                elsewhere (peer_busy)
        """
        connection = await self._pending_for_recipient(connection_id, acting_user_id)

        now = self.clock.now()
        if connection.is_overdue(now):
            await self.expire(connection)
            raise ConflictError("This request has expired", "expired")

        # Either party may have become live elsewhere since the request was made
        if await self._live_connection(acting_user_id, exclude_id=connection.id):
            raise ConflictError("You already have another active or pending mode", "self_busy")
        if await self._live_connection(connection.initiator_id, exclude_id=connection.id):
            raise ConflictError("The requester is busy with another mode", "peer_busy")

        end = now + timedelta(days=connection.duration_days)
        activated = await self.connections.activate(connection.id, now, end)
        if not activated:
            logger.info(
                "Accept lost a race", connection_id=connection.id, acting_user_id=acting_user_id
            )
            raise ConflictError("This request is no longer pending", "not_pending")

        logger.info(
            "Message mode accepted",
            connection_id=activated.id,
            initiator_id=activated.initiator_id,
            recipient_id=activated.recipient_id,
            end_date=activated.end_date.isoformat(),
        )
        await notify_safely(
            self.notifier,
            activated.initiator_id,
            TemplateKind.MODE_ACCEPTED,
            {"mode_id": activated.id},
        )
        return activated

    async def reject(self, connection_id: str, acting_user_id: str) -> Connection:
        connection = await self._pending_for_recipient(connection_id, acting_user_id)
        rejected = await self._transition(connection, ConnectionStatus.REJECTED)

        await notify_safely(
            self.notifier,
            rejected.initiator_id,
            TemplateKind.MODE_REJECTED,
            {"mode_id": rejected.id},
        )
        return rejected

    async def block(self, connection_id: str, acting_user_id: str) -> Connection:
        connection = await self._pending_for_recipient(connection_id, acting_user_id)
        blocked = await self._transition(connection, ConnectionStatus.BLOCKED)

        await self.users.add_block(acting_user_id, connection.initiator_id)
        logger.info("User blocked via request", user_id=acting_user_id, blocked_id=connection.initiator_id)
        return blocked

    async def cancel(self, connection_id: str, acting_user_id: str) -> Connection:
        connection = await self._require(connection_id)
        if connection.initiator_id != acting_user_id:
            raise ForbiddenError("Only the requester can cancel", "not_initiator")
        if connection.status != ConnectionStatus.PENDING:
            raise ConflictError(
                "Only a pending request can be canceled",
                "not_pending",
                {"status": connection.status.value},
            )
        return await self._transition(connection, ConnectionStatus.CANCELED)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_current(self, user_id: str) -> ConnectionView | None:
        connection = await self._live_connection(user_id)
        if not connection:
            return None

        summaries = await self.users.get_summaries(
            [connection.initiator_id, connection.recipient_id]
        )
        initiator = summaries.get(connection.initiator_id) or UserSummary(
            user_id=connection.initiator_id
        )
        recipient = summaries.get(connection.recipient_id) or UserSummary(
            user_id=connection.recipient_id
        )

        can_send_today = None
        if connection.status == ConnectionStatus.ACTIVE_PERIOD:
            sent = await self.messages.find_for_day(connection.id, user_id, today(self.clock))
            can_send_today = sent is None

        return ConnectionView.build(connection, initiator, recipient, user_id, can_send_today)

    # ------------------------------------------------------------------
    # Expiry (shared with the cleanup sweep)
    # ------------------------------------------------------------------

    async def expire(self, connection: Connection) -> Connection | None:
        """
        Move an overdue live mode to EXPIRED and notify.

        ACTIVE_PERIOD expiry notifies both parties; PENDING expiry notifies
        only the initiator. Returns None when another writer got there first.
        """
        expired = await self.connections.transition(
            connection.id, connection.status, ConnectionStatus.EXPIRED
        )
        if not expired:
            return None

        logger.info(
            "Message mode expired",
            connection_id=expired.id,
            previous_status=connection.status.value,
        )

        if connection.status == ConnectionStatus.ACTIVE_PERIOD:
            for user_id in (expired.initiator_id, expired.recipient_id):
                await notify_safely(
                    self.notifier, user_id, TemplateKind.MODE_EXPIRED, {"mode_id": expired.id}
                )
        else:
            await notify_safely(
                self.notifier,
                expired.initiator_id,
                TemplateKind.PENDING_EXPIRED,
                {"mode_id": expired.id},
            )
        return expired

    async def expire_overdue(self) -> int:
        count = 0
        for connection in await self.connections.list_overdue(self.clock.now()):
            if await self.expire(connection):
                count += 1
        return count

    async def send_pending_reminders(self) -> int:
        now = self.clock.now()
        candidates = await self.connections.list_reminder_candidates(
            now - PENDING_REMINDER_AFTER, now
        )

        count = 0
        for connection in candidates:
            # Claim the reminder first so a concurrent sweep cannot send it twice
            if not await self.connections.mark_reminder_sent(connection.id, now):
                continue
            await notify_safely(
                self.notifier,
                connection.recipient_id,
                TemplateKind.PENDING_REMINDER,
                {"mode_id": connection.id},
            )
            count += 1
        return count

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require(self, connection_id: str) -> Connection:
        connection = await self.connections.get(connection_id)
        if not connection:
            raise NotFoundError("Message mode not found", "mode_not_found")
        return connection

    async def _pending_for_recipient(self, connection_id: str, acting_user_id: str) -> Connection:
        connection = await self._require(connection_id)
        if connection.recipient_id != acting_user_id:
            raise ForbiddenError("Only the recipient can respond to this request", "not_recipient")
        if connection.status != ConnectionStatus.PENDING:
            raise ConflictError(
                "This request is no longer pending",
                "not_pending",
                {"status": connection.status.value},
            )
        return connection

    async def _transition(self, connection: Connection, target: ConnectionStatus) -> Connection:
        updated = await self.connections.transition(connection.id, connection.status, target)
        if not updated:
            raise ConflictError("This request is no longer pending", "not_pending")

        logger.info(
            "Message mode transitioned",
            connection_id=updated.id,
            from_status=connection.status.value,
            to_status=target.value,
        )
        return updated

    async def _live_connection(
        self, user_id: str, exclude_id: str | None = None
    ) -> Connection | None:
        connection = await self.connections.find_live_for_user(user_id, exclude_id=exclude_id)
        if connection and connection.is_overdue(self.clock.now()):
            await self.expire(connection)
            return None
        return connection
