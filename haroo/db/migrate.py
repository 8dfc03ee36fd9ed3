"""Apply the bundled schema to the configured database."""

from pathlib import Path

from haroo.db.pool import db_pool
from haroo.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"


async def apply_schema() -> None:
    ddl = SCHEMA_PATH.read_text(encoding="utf-8")
    async with db_pool.transaction() as conn:
        await conn.execute(ddl)
    logger.info("Database schema applied", path=str(SCHEMA_PATH))
