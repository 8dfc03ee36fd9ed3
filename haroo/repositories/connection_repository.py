"""
PostgreSQL persistence for message modes.

The live-connection invariant is carried by connection_participants: its
primary key on user_id means a second PENDING/ACTIVE_PERIOD mode for the
same user cannot be committed, whichever role the user plays. Slots are
claimed in the same transaction that inserts the PENDING row and released
in the same transaction that moves the mode to a terminal status.
"""

from datetime import datetime

from haroo.db.helpers import DatabaseError, as_uuid, execute_query, fetch_all, fetch_one, with_db_retry
from haroo.db.pool import db_pool
from haroo.infrastructure.clock import ensure_aware
from haroo.infrastructure.observability.logging import get_logger
from haroo.models.domain.connection_domain import LIVE_STATUSES, Connection, ConnectionStatus
from haroo.repositories.base import LiveSlotTaken

logger = get_logger(__name__)


class PostgresConnectionRepository:
    MODE_COLUMNS = """
        id, initiator_id, recipient_id, status, duration_days,
        start_date, end_date, requested_at, expires_at,
        reminder_sent, reminder_sent_at, created_at, updated_at
    """

    @staticmethod
    def _row_to_connection(row: dict | None) -> Connection | None:
        if not row:
            return None

        return Connection(
            id=str(row["id"]),
            initiator_id=str(row["initiator_id"]),
            recipient_id=str(row["recipient_id"]),
            status=ConnectionStatus(row["status"]),
            duration_days=row["duration_days"],
            start_date=ensure_aware(row.get("start_date")),
            end_date=ensure_aware(row.get("end_date")),
            requested_at=ensure_aware(row.get("requested_at")),
            expires_at=ensure_aware(row.get("expires_at")),
            reminder_sent=bool(row.get("reminder_sent")),
            reminder_sent_at=ensure_aware(row.get("reminder_sent_at")),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def get(self, connection_id: str) -> Connection | None:
        mode_id = as_uuid(connection_id)
        if mode_id is None:
            return None
        query = f"SELECT {self.MODE_COLUMNS} FROM message_modes WHERE id = %s"
        return self._row_to_connection(await fetch_one(query, (mode_id,)))

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def find_live_for_user(
        self, user_id: str, exclude_id: str | None = None
    ) -> Connection | None:
        query = f"""
            SELECT {self.MODE_COLUMNS}
            FROM message_modes
            WHERE (initiator_id = %s OR recipient_id = %s)
              AND status IN ('PENDING', 'ACTIVE_PERIOD')
              AND (%s::uuid IS NULL OR id <> %s::uuid)
            ORDER BY created_at DESC
            LIMIT 1
        """
        exclude = as_uuid(exclude_id)
        row = await fetch_one(query, (user_id, user_id, exclude, exclude))
        return self._row_to_connection(row)

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def find_active_for_user(self, user_id: str) -> Connection | None:
        query = f"""
            SELECT {self.MODE_COLUMNS}
            FROM message_modes
            WHERE (initiator_id = %s OR recipient_id = %s)
              AND status = 'ACTIVE_PERIOD'
            ORDER BY start_date DESC
            LIMIT 1
        """
        return self._row_to_connection(await fetch_one(query, (user_id, user_id)))

    async def create_pending(
        self,
        initiator_id: str,
        recipient_id: str,
        duration_days: int,
        requested_at: datetime,
        expires_at: datetime,
    ) -> Connection:
        insert_query = f"""
            INSERT INTO message_modes (
                initiator_id, recipient_id, status, duration_days, requested_at, expires_at
            )
            VALUES (%s, %s, 'PENDING', %s, %s, %s)
            RETURNING {self.MODE_COLUMNS}
        """
        claim_query = """
            INSERT INTO connection_participants (user_id, connection_id)
            VALUES (%s, %s)
        """

        async with db_pool.transaction() as conn:
            row = await fetch_one(
                insert_query,
                (initiator_id, recipient_id, duration_days, requested_at, expires_at),
                connection=conn,
            )
            for user_id in (initiator_id, recipient_id):
                try:
                    await execute_query(claim_query, (user_id, row["id"]), connection=conn)
                except DatabaseError as e:
                    if e.is_unique_violation:
                        raise LiveSlotTaken(user_id) from e
                    raise

        connection = self._row_to_connection(row)
        logger.info(
            "Message mode row created",
            connection_id=connection.id,
            initiator_id=initiator_id,
            recipient_id=recipient_id,
        )
        return connection

    async def activate(
        self, connection_id: str, start_date: datetime, end_date: datetime
    ) -> Connection | None:
        query = f"""
            UPDATE message_modes m
            SET status = 'ACTIVE_PERIOD',
                start_date = %s,
                end_date = %s,
                updated_at = NOW()
            WHERE m.id = %s
              AND m.status = 'PENDING'
              AND (
                  SELECT COUNT(*) FROM connection_participants p
                  WHERE p.connection_id = m.id
                    AND p.user_id IN (m.initiator_id, m.recipient_id)
              ) = 2
            RETURNING {self.MODE_COLUMNS}
        """
        row = await fetch_one(query, (start_date, end_date, as_uuid(connection_id)))
        return self._row_to_connection(row)

    async def transition(
        self, connection_id: str, from_status: ConnectionStatus, to_status: ConnectionStatus
    ) -> Connection | None:
        update_query = f"""
            UPDATE message_modes
            SET status = %s, updated_at = NOW()
            WHERE id = %s AND status = %s
            RETURNING {self.MODE_COLUMNS}
        """
        mode_id = as_uuid(connection_id)

        async with db_pool.transaction() as conn:
            row = await fetch_one(
                update_query, (to_status.value, mode_id, from_status.value), connection=conn
            )
            if row and to_status not in LIVE_STATUSES:
                await execute_query(
                    "DELETE FROM connection_participants WHERE connection_id = %s",
                    (mode_id,),
                    connection=conn,
                )

        return self._row_to_connection(row)

    async def list_overdue(self, now: datetime) -> list[Connection]:
        query = f"""
            SELECT {self.MODE_COLUMNS}
            FROM message_modes
            WHERE (status = 'ACTIVE_PERIOD' AND end_date < %s)
               OR (status = 'PENDING' AND expires_at < %s)
        """
        rows = await fetch_all(query, (now, now))
        return [self._row_to_connection(row) for row in rows]

    async def list_reminder_candidates(
        self, requested_before: datetime, now: datetime
    ) -> list[Connection]:
        query = f"""
            SELECT {self.MODE_COLUMNS}
            FROM message_modes
            WHERE status = 'PENDING'
              AND reminder_sent = FALSE
              AND requested_at < %s
              AND expires_at > %s
        """
        rows = await fetch_all(query, (requested_before, now))
        return [self._row_to_connection(row) for row in rows]

    async def mark_reminder_sent(self, connection_id: str, sent_at: datetime) -> bool:
        query = """
            UPDATE message_modes
            SET reminder_sent = TRUE, reminder_sent_at = %s, updated_at = NOW()
            WHERE id = %s AND reminder_sent = FALSE
        """
        return await execute_query(query, (sent_at, as_uuid(connection_id))) > 0
