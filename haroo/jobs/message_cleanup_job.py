"""
Message Cleanup Job - expiry and retention sweep.

Runs daily at 04:00 local time (settings.TIMEZONE) and after every test-tool
time jump:
1. ACTIVE messages past expires_at -> EXPIRED
2. EXPIRED messages older than the retention window -> deleted
3. Overdue modes -> EXPIRED (ACTIVE_PERIOD notifies both parties,
   PENDING notifies the initiator only)
4. PENDING modes waiting 12h without a reminder -> reminder to the recipient
5. Traces past expires_at -> deleted

The sweep is a janitor only: every request path already checks expiry on
its own, so a late or failed sweep never grants anything. Each step runs
even if an earlier one failed.

Usage:
    python -m haroo.jobs.worker message_cleanup
"""

import asyncio
import time
from datetime import datetime, timedelta

from haroo.db.pool import db_pool
from haroo.dependencies import Container, get_container
from haroo.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CLEANUP_HOUR_LOCAL = 4
RETRY_DELAY_SECONDS = 300


class MessageCleanupJob:
    def __init__(self, container: Container):
        self.container = container
        self.is_running = False

    async def run_cleanup(self) -> dict:
        """
        Run every sweep step once.

        Returns:
            dict: {
                "success": bool,
                "expired_messages": int,
                "purged_messages": int,
                "expired_modes": int,
                "reminders_sent": int,
                "purged_traces": int,
                "errors": list,
            }
        """
        if self.is_running:
            logger.warning("Cleanup job already running, skipping")
            return {"success": False, "error": "Already running"}

        self.is_running = True
        started = time.monotonic()
        logger.info("Starting message cleanup job", now=self.container.clock.now().isoformat())

        result = {
            "success": True,
            "expired_messages": 0,
            "purged_messages": 0,
            "expired_modes": 0,
            "reminders_sent": 0,
            "purged_traces": 0,
            "errors": [],
        }

        steps = [
            ("expired_messages", self.container.message_service.expire_messages),
            ("purged_messages", self.container.message_service.purge_messages),
            ("expired_modes", self.container.connection_service.expire_overdue),
            ("reminders_sent", self.container.connection_service.send_pending_reminders),
            ("purged_traces", self.container.trace_service.purge_expired),
        ]

        try:
            for key, step in steps:
                try:
                    result[key] = await step()
                    logger.info("Cleanup step finished", step=key, count=result[key])
                except Exception as e:
                    error_msg = f"{key} failed: {e}"
                    logger.error("Cleanup step failed", step=key, error=str(e))
                    result["errors"].append(error_msg)
        finally:
            self.is_running = False

        result["success"] = not result["errors"]
        logger.info(
            "Message cleanup job completed",
            duration_seconds=round(time.monotonic() - started, 3),
            result=result,
        )
        return result


def seconds_until_next_run(now: datetime, hour: int = CLEANUP_HOUR_LOCAL) -> float:
    """Seconds from a zone-aware `now` to the next `hour`:00 in the same zone."""
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


message_cleanup_job = MessageCleanupJob(get_container())


async def run_message_cleanup() -> dict:
    return await message_cleanup_job.run_cleanup()


async def start_message_cleanup_scheduler():
    """
    Run the cleanup daily at 04:00 local time.

    Standalone entry for the worker process; opens the database pool itself.
    """
    await db_pool.initialize()
    tz = get_container().clock.tz
    logger.info("Message cleanup scheduler started", hour=CLEANUP_HOUR_LOCAL, timezone=str(tz))

    while True:
        try:
            delay = seconds_until_next_run(datetime.now(tz))
            logger.info("Next message cleanup scheduled", in_seconds=round(delay))
            await asyncio.sleep(delay)

            result = await run_message_cleanup()
            if result.get("errors"):
                logger.warning("Message cleanup finished with errors", errors=result["errors"])

        except asyncio.CancelledError:
            logger.info("Message cleanup scheduler stopped")
            await db_pool.close()
            raise
        except Exception as e:
            logger.error("Message cleanup scheduler error", error=str(e))
            await asyncio.sleep(RETRY_DELAY_SECONDS)
