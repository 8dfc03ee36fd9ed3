"""
PostgreSQL persistence for users: block lists, trace quota state and device tokens.
"""

from datetime import datetime

from haroo.db.helpers import fetch_all, fetch_one, with_db_retry
from haroo.infrastructure.clock import ensure_aware
from haroo.infrastructure.observability.logging import get_logger
from haroo.models.domain.user_domain import UserState, UserSummary

logger = get_logger(__name__)


class PostgresUserRepository:
    USER_COLUMNS = """
        id, hash_id, status, blocked_user_ids, fcm_token,
        trace_daily_count, last_trace_at, trace_pass_expires_at, report_influence,
        created_at, updated_at
    """

    @staticmethod
    def _row_to_user(row: dict | None) -> UserState | None:
        if not row:
            return None

        return UserState(
            id=str(row["id"]),
            hash_id=row.get("hash_id"),
            status=row["status"],
            blocked_user_ids=list(row.get("blocked_user_ids") or []),
            fcm_token=row.get("fcm_token"),
            trace_daily_count=row.get("trace_daily_count") or 0,
            last_trace_at=ensure_aware(row.get("last_trace_at")),
            trace_pass_expires_at=ensure_aware(row.get("trace_pass_expires_at")),
            report_influence=row.get("report_influence") or 1.0,
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def get(self, user_id: str) -> UserState | None:
        query = f"SELECT {self.USER_COLUMNS} FROM users WHERE id = %s"
        return self._row_to_user(await fetch_one(query, (user_id,)))

    async def ensure(self, user_id: str, hash_id: str | None = None) -> UserState:
        """Create the user row on first authentication, otherwise return it unchanged."""
        query = f"""
            INSERT INTO users (id, hash_id)
            VALUES (%s, %s)
            ON CONFLICT (id) DO UPDATE SET hash_id = COALESCE(users.hash_id, EXCLUDED.hash_id)
            RETURNING {self.USER_COLUMNS}
        """
        row = await fetch_one(query, (user_id, hash_id))
        return self._row_to_user(row)

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def get_summaries(self, user_ids: list[str]) -> dict[str, UserSummary]:
        if not user_ids:
            return {}
        rows = await fetch_all(
            "SELECT id, hash_id, status FROM users WHERE id = ANY(%s)", (list(user_ids),)
        )
        return {
            str(row["id"]): UserSummary(
                user_id=str(row["id"]), hash_id=row.get("hash_id"), status=row["status"]
            )
            for row in rows
        }

    async def add_block(self, user_id: str, blocked_id: str) -> UserState | None:
        query = f"""
            UPDATE users
            SET blocked_user_ids = CASE
                    WHEN %s = ANY(blocked_user_ids) THEN blocked_user_ids
                    ELSE array_append(blocked_user_ids, %s)
                END,
                updated_at = NOW()
            WHERE id = %s
            RETURNING {self.USER_COLUMNS}
        """
        row = await fetch_one(query, (blocked_id, blocked_id, user_id))
        return self._row_to_user(row)

    async def remove_block(self, user_id: str, blocked_id: str) -> UserState | None:
        query = f"""
            UPDATE users
            SET blocked_user_ids = array_remove(blocked_user_ids, %s),
                updated_at = NOW()
            WHERE id = %s
            RETURNING {self.USER_COLUMNS}
        """
        row = await fetch_one(query, (blocked_id, user_id))
        return self._row_to_user(row)

    async def set_trace_pass(
        self, user_id: str, expires_at: datetime, last_trace_at: datetime
    ) -> UserState | None:
        query = f"""
            UPDATE users
            SET trace_pass_expires_at = %s,
                last_trace_at = %s,
                updated_at = NOW()
            WHERE id = %s
            RETURNING {self.USER_COLUMNS}
        """
        row = await fetch_one(query, (expires_at, last_trace_at, user_id))
        return self._row_to_user(row)

    async def reset_trace_state(self, user_id: str) -> UserState | None:
        query = f"""
            UPDATE users
            SET trace_pass_expires_at = NULL,
                last_trace_at = NULL,
                trace_daily_count = 0,
                updated_at = NOW()
            WHERE id = %s
            RETURNING {self.USER_COLUMNS}
        """
        row = await fetch_one(query, (user_id,))
        return self._row_to_user(row)

    async def set_fcm_token(self, user_id: str, token: str) -> UserState | None:
        query = f"""
            UPDATE users
            SET fcm_token = %s, updated_at = NOW()
            WHERE id = %s
            RETURNING {self.USER_COLUMNS}
        """
        row = await fetch_one(query, (token, user_id))
        return self._row_to_user(row)
