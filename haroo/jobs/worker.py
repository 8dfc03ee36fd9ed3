"""
Worker process entry point.

    python -m haroo.jobs.worker message_cleanup        # daily 04:00 loop
    python -m haroo.jobs.worker message_cleanup_once   # one sweep, then exit

The job may also come from WORKER_JOB.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from haroo.db.pool import db_pool
from haroo.infrastructure.observability.logging import get_logger, setup_logging
from haroo.jobs.message_cleanup_job import run_message_cleanup, start_message_cleanup_scheduler

logger = get_logger(__name__)

DEFAULT_JOB = "message_cleanup"


async def run_message_cleanup_once() -> None:
    await db_pool.initialize()
    try:
        result = await run_message_cleanup()
        logger.info("One-off message cleanup finished", success=result.get("success"))
    finally:
        await db_pool.close()


JOB_REGISTRY: dict[str, Callable[[], Awaitable[None]]] = {
    "message_cleanup": start_message_cleanup_scheduler,
    "message_cleanup_once": run_message_cleanup_once,
}


def _resolve_job_name() -> str:
    raw = sys.argv[1] if len(sys.argv) > 1 else os.getenv("WORKER_JOB", DEFAULT_JOB)
    return raw.strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    name = (job_name or _resolve_job_name()).strip().lower()
    job = JOB_REGISTRY.get(name)
    if job is None:
        raise ValueError(f"Unknown worker job '{name}', expected one of {sorted(JOB_REGISTRY)}")

    logger.info("Worker starting", job=name)
    await job()


def main() -> None:
    setup_logging(log_level="INFO")
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
