"""
PostgreSQL persistence for traces, likes and reports.

Likes live in trace_likes with a (trace_id, user_id) primary key; the
counter on traces moves in the same statement as the membership row, so
like_count always equals the number of like rows. Reports rely on
uq_trace_reports_reporter for at-most-once per reporter.
"""

from datetime import datetime
from typing import Any

from haroo.db.helpers import as_uuid, execute_query, fetch_all, fetch_one, with_db_retry
from haroo.db.pool import db_pool
from haroo.infrastructure.clock import ensure_aware
from haroo.infrastructure.observability.logging import get_logger
from haroo.models.domain.trace_domain import GridCell, Location, ToneTag, Trace, TraceStatus
from haroo.repositories.base import DuplicateReport, StaleWrite

logger = get_logger(__name__)


class PostgresTraceRepository:
    TRACE_COLUMNS = """
        t.id, t.author_id, t.content, t.tone_tag, t.lat, t.lng, t.grid_x, t.grid_y,
        t.status, t.like_count, t.report_score, t.created_at, t.expires_at,
        ARRAY(SELECT l.user_id FROM trace_likes l WHERE l.trace_id = t.id) AS liked_by
    """

    @staticmethod
    def _row_to_trace(row: dict | None) -> Trace | None:
        if not row:
            return None

        return Trace(
            id=str(row["id"]),
            author_id=str(row["author_id"]),
            content=row["content"],
            tone_tag=ToneTag(row["tone_tag"]),
            location=Location(lat=row["lat"], lng=row["lng"]),
            grid=GridCell(x=row["grid_x"], y=row["grid_y"]),
            status=TraceStatus(row["status"]),
            like_count=row["like_count"],
            liked_by=set(row.get("liked_by") or []),
            report_score=float(row["report_score"]),
            created_at=ensure_aware(row["created_at"]),
            expires_at=ensure_aware(row["expires_at"]),
        )

    async def _select_by_id(self, trace_id, connection=None) -> Trace | None:
        query = f"SELECT {self.TRACE_COLUMNS} FROM traces t WHERE t.id = %s"
        return self._row_to_trace(await fetch_one(query, (trace_id,), connection=connection))

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def get(self, trace_id: str) -> Trace | None:
        parsed = as_uuid(trace_id)
        if parsed is None:
            return None
        return await self._select_by_id(parsed)

    async def record_write(
        self,
        trace: dict[str, Any],
        author_id: str,
        expected_last_trace_at: datetime | None,
        new_daily_count: int,
    ) -> Trace:
        counters_query = """
            UPDATE users
            SET trace_daily_count = %s,
                last_trace_at = %s,
                updated_at = NOW()
            WHERE id = %s
              AND last_trace_at IS NOT DISTINCT FROM %s
        """
        insert_query = """
            INSERT INTO traces (
                author_id, content, tone_tag, lat, lng, grid_x, grid_y,
                status, created_at, expires_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, 'ACTIVE', %s, %s)
            RETURNING id
        """

        async with db_pool.transaction() as conn:
            updated = await execute_query(
                counters_query,
                (new_daily_count, trace["created_at"], author_id, expected_last_trace_at),
                connection=conn,
            )
            if updated == 0:
                raise StaleWrite(
                    f"Trace quota state for {author_id} changed concurrently",
                    operation="record_write",
                )

            row = await fetch_one(
                insert_query,
                (
                    author_id,
                    trace["content"],
                    trace["tone_tag"],
                    trace["lat"],
                    trace["lng"],
                    trace["grid_x"],
                    trace["grid_y"],
                    trace["created_at"],
                    trace["expires_at"],
                ),
                connection=conn,
            )
            created = await self._select_by_id(row["id"], connection=conn)

        logger.info("Trace row created", trace_id=created.id, author_id=author_id)
        return created

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def list_in_cell(
        self, cell: GridCell, now: datetime, skip: int, limit: int
    ) -> list[Trace]:
        query = f"""
            SELECT {self.TRACE_COLUMNS}
            FROM traces t
            WHERE t.grid_x = %s
              AND t.grid_y = %s
              AND t.status = 'ACTIVE'
              AND t.expires_at > %s
            ORDER BY t.created_at DESC
            OFFSET %s
            LIMIT %s
        """
        rows = await fetch_all(query, (cell.x, cell.y, now, skip, limit))
        return [self._row_to_trace(row) for row in rows]

    async def like(self, trace_id: str, user_id: str) -> int | None:
        query = """
            WITH ins AS (
                INSERT INTO trace_likes (trace_id, user_id)
                SELECT id, %s FROM traces WHERE id = %s
                ON CONFLICT (trace_id, user_id) DO NOTHING
                RETURNING trace_id
            )
            UPDATE traces
            SET like_count = like_count + (SELECT COUNT(*) FROM ins)
            WHERE id = %s
            RETURNING like_count
        """
        parsed = as_uuid(trace_id)
        row = await fetch_one(query, (user_id, parsed, parsed))
        return row["like_count"] if row else None

    async def unlike(self, trace_id: str, user_id: str) -> int | None:
        query = """
            WITH del AS (
                DELETE FROM trace_likes
                WHERE trace_id = %s AND user_id = %s
                RETURNING trace_id
            )
            UPDATE traces
            SET like_count = GREATEST(like_count - (SELECT COUNT(*) FROM del), 0)
            WHERE id = %s
            RETURNING like_count
        """
        parsed = as_uuid(trace_id)
        row = await fetch_one(query, (parsed, user_id, parsed))
        return row["like_count"] if row else None

    async def add_report(
        self, trace_id: str, reporter_id: str, reason: str, influence: float, hide_threshold: float
    ) -> Trace | None:
        report_query = """
            INSERT INTO trace_reports (trace_id, reporter_id, reason)
            VALUES (%s, %s, %s)
            ON CONFLICT (trace_id, reporter_id) DO NOTHING
            RETURNING id
        """
        score_query = """
            UPDATE traces
            SET report_score = report_score + %s,
                status = CASE
                    WHEN status = 'ACTIVE' AND report_score + %s >= %s THEN 'HIDDEN'
                    ELSE status
                END
            WHERE id = %s
            RETURNING id
        """
        parsed = as_uuid(trace_id)

        async with db_pool.transaction() as conn:
            inserted = await fetch_one(report_query, (parsed, reporter_id, reason), connection=conn)
            if not inserted:
                raise DuplicateReport(trace_id, reporter_id)

            updated = await fetch_one(
                score_query, (influence, influence, hide_threshold, parsed), connection=conn
            )
            if not updated:
                return None
            return await self._select_by_id(parsed, connection=conn)

    async def set_status(self, trace_id: str, status: TraceStatus) -> Trace | None:
        parsed = as_uuid(trace_id)
        async with db_pool.transaction() as conn:
            updated = await fetch_one(
                "UPDATE traces SET status = %s WHERE id = %s RETURNING id",
                (status.value, parsed),
                connection=conn,
            )
            if not updated:
                return None
            return await self._select_by_id(parsed, connection=conn)

    async def purge_expired(self, now: datetime) -> int:
        return await execute_query("DELETE FROM traces WHERE expires_at < %s", (now,))
