"""PostgreSQL persistence for outbound push attempts."""

from typing import Any

from psycopg.types.json import Jsonb

from haroo.db.helpers import execute_query, fetch_one


class PostgresPushLogRepository:
    async def record(
        self, user_id: str, title: str, body: str, data: dict[str, Any], delivered: bool
    ) -> None:
        query = """
            INSERT INTO push_logs (user_id, title, body, data, delivered)
            VALUES (%s, %s, %s, %s, %s)
        """
        await execute_query(query, (user_id, title, body, Jsonb(data), delivered))

    async def latest_for_users(self, user_ids: list[str]) -> dict[str, Any] | None:
        query = """
            SELECT user_id, title, body, data, delivered, triggered_at
            FROM push_logs
            WHERE user_id = ANY(%s)
            ORDER BY triggered_at DESC
            LIMIT 1
        """
        return await fetch_one(query, (list(user_ids),))
