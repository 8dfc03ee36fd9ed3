"""
PostgreSQL persistence for daily messages.

uq_messages_daily (mode_id, sender_id, sent_day) is the guard behind the
one-message-per-day rule; sent_day is the sender's local calendar day as
computed by the service clock.
"""

from datetime import date, datetime

from haroo.db.helpers import DatabaseError, as_uuid, execute_query, fetch_one, with_db_retry
from haroo.infrastructure.clock import ensure_aware
from haroo.infrastructure.observability.logging import get_logger
from haroo.models.domain.message_domain import Message, MessageStatus
from haroo.repositories.base import DuplicateDailyMessage

logger = get_logger(__name__)


class PostgresMessageRepository:
    MESSAGE_COLUMNS = """
        id, mode_id, sender_id, content, is_read, status, sent_at, sent_day, expires_at
    """

    @staticmethod
    def _row_to_message(row: dict | None) -> Message | None:
        if not row:
            return None

        return Message(
            id=str(row["id"]),
            connection_id=str(row["mode_id"]),
            sender_id=str(row["sender_id"]),
            content=row["content"],
            is_read=bool(row["is_read"]),
            status=MessageStatus(row["status"]),
            sent_at=ensure_aware(row["sent_at"]),
            sent_day=row["sent_day"],
            expires_at=ensure_aware(row["expires_at"]),
        )

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def get(self, message_id: str) -> Message | None:
        msg_id = as_uuid(message_id)
        if msg_id is None:
            return None
        query = f"SELECT {self.MESSAGE_COLUMNS} FROM messages WHERE id = %s"
        return self._row_to_message(await fetch_one(query, (msg_id,)))

    async def create(
        self,
        connection_id: str,
        sender_id: str,
        content: str,
        sent_at: datetime,
        sent_day: date,
        expires_at: datetime,
    ) -> Message:
        query = f"""
            INSERT INTO messages (mode_id, sender_id, content, sent_at, sent_day, expires_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {self.MESSAGE_COLUMNS}
        """
        try:
            row = await fetch_one(
                query, (as_uuid(connection_id), sender_id, content, sent_at, sent_day, expires_at)
            )
        except DatabaseError as e:
            if e.is_unique_violation:
                raise DuplicateDailyMessage(connection_id, sender_id, sent_day) from e
            raise

        return self._row_to_message(row)

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def find_for_day(self, connection_id: str, sender_id: str, day: date) -> Message | None:
        query = f"""
            SELECT {self.MESSAGE_COLUMNS}
            FROM messages
            WHERE mode_id = %s AND sender_id = %s AND sent_day = %s
        """
        row = await fetch_one(query, (as_uuid(connection_id), sender_id, day))
        return self._row_to_message(row)

    async def mark_read(self, message_id: str) -> Message | None:
        query = f"""
            UPDATE messages SET is_read = TRUE
            WHERE id = %s
            RETURNING {self.MESSAGE_COLUMNS}
        """
        return self._row_to_message(await fetch_one(query, (as_uuid(message_id),)))

    async def expire_overdue(self, now: datetime) -> int:
        query = "UPDATE messages SET status = 'EXPIRED' WHERE status = 'ACTIVE' AND expires_at < %s"
        return await execute_query(query, (now,))

    async def purge_expired(self, expired_before: datetime) -> int:
        query = "DELETE FROM messages WHERE status = 'EXPIRED' AND expires_at < %s"
        return await execute_query(query, (expired_before,))
