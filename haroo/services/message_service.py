"""
Daily message exchange inside an active message mode.

Each participant may send one message per local calendar day. The day is
taken from the service clock in the configured zone and stored with the
message; the (mode, sender, day) unique index is the real guard, the
lookup before insert only produces a friendlier error.
"""

from datetime import timedelta

from haroo.infrastructure.clock import Clock, today
from haroo.infrastructure.observability.logging import get_logger
from haroo.models.domain.connection_domain import ConnectionStatus
from haroo.models.domain.message_domain import Message
from haroo.repositories.base import ConnectionRepository, DuplicateDailyMessage, MessageRepository
from haroo.services.errors import ConflictError, ForbiddenError, InvalidArgumentError, NotFoundError
from haroo.services.notifications import NotificationPort, TemplateKind, notify_safely

logger = get_logger(__name__)

MESSAGE_TTL = timedelta(hours=24)
MESSAGE_RETENTION = timedelta(days=7)
MESSAGE_MAX_LENGTH = 1000


class MessageService:
    def __init__(
        self,
        connections: ConnectionRepository,
        messages: MessageRepository,
        notifier: NotificationPort,
        clock: Clock,
    ):
        self.connections = connections
        self.messages = messages
        self.notifier = notifier
        self.clock = clock

    async def send(self, connection_id: str, sender_id: str, content: str) -> Message:
        """
        Send today's message to the other participant.

        Raises:
            InvalidArgumentError: empty or oversized content
            NotFoundError: unknown mode
            ForbiddenError: sender is not a participant
            ConflictError: mode not active (not_active), past its end (expired),
                or a message was already sent today (daily_limit)
        """
        if not content or not content.strip():
            raise InvalidArgumentError("Message content is required", "content_required")
        if len(content) > MESSAGE_MAX_LENGTH:
            raise InvalidArgumentError(
                f"Message content is limited to {MESSAGE_MAX_LENGTH} characters",
                "content_too_long",
                {"max_length": MESSAGE_MAX_LENGTH},
            )

        connection = await self.connections.get(connection_id)
        if not connection:
            raise NotFoundError("Message mode not found", "mode_not_found")
        if not connection.involves(sender_id):
            raise ForbiddenError("Not a participant of this mode", "not_participant")
        if connection.status != ConnectionStatus.ACTIVE_PERIOD:
            raise ConflictError(
                "Message mode is not active", "not_active", {"status": connection.status.value}
            )

        now = self.clock.now()
        if connection.end_date and now > connection.end_date:
            raise ConflictError("Message mode has expired", "expired")

        day = today(self.clock)
        if await self.messages.find_for_day(connection.id, sender_id, day):
            raise ConflictError(
                "You have already sent a message today", "daily_limit", {"day": day.isoformat()}
            )

        try:
            message = await self.messages.create(
                connection.id,
                sender_id,
                content,
                sent_at=now,
                sent_day=day,
                expires_at=now + MESSAGE_TTL,
            )
        except DuplicateDailyMessage as e:
            raise ConflictError(
                "You have already sent a message today", "daily_limit", {"day": day.isoformat()}
            ) from e

        logger.info(
            "Message sent",
            message_id=message.id,
            connection_id=connection.id,
            sender_id=sender_id,
            day=day.isoformat(),
        )

        recipient_id = connection.partner_of(sender_id)
        await notify_safely(
            self.notifier, recipient_id, TemplateKind.MESSAGE_RECEIVED, {"mode_id": connection.id}
        )

        return message

    async def get_today_received(self, user_id: str) -> Message | None:
        """Today's message from the partner in the user's active mode, if any."""
        connection = await self.connections.find_active_for_user(user_id)
        if not connection:
            return None

        partner_id = connection.partner_of(user_id)
        return await self.messages.find_for_day(connection.id, partner_id, today(self.clock))

    async def mark_read(self, message_id: str, acting_user_id: str) -> Message:
        message = await self.messages.get(message_id)
        if not message:
            raise NotFoundError("Message not found", "message_not_found")

        connection = await self.connections.get(message.connection_id)
        if not connection or not connection.involves(acting_user_id):
            raise ForbiddenError("Not a participant of this mode", "not_participant")
        if message.sender_id == acting_user_id:
            raise ForbiddenError("Only the receiver can mark a message read", "not_receiver")

        if message.is_read:
            return message

        updated = await self.messages.mark_read(message.id)
        logger.info("Message read", message_id=message.id, user_id=acting_user_id)
        return updated or message

    async def expire_messages(self) -> int:
        return await self.messages.expire_overdue(self.clock.now())

    async def purge_messages(self) -> int:
        """Delete EXPIRED messages whose expiry is older than the retention window."""
        return await self.messages.purge_expired(self.clock.now() - MESSAGE_RETENTION)
