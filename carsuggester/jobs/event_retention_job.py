"""
Event Retention Job - enforces the analytics data retention policy.

Deletes user_events rows older than ANALYTICS_EVENT_RETENTION_DAYS.
Runs inside the worker process on a fixed interval; a failed run is
logged and retried on the next cycle.
"""

import asyncio
from datetime import UTC, datetime, timedelta

from carsuggester.config import settings
from carsuggester.db.pool import DatabasePoolManager
from carsuggester.features.analytics.repository.event_repository import (
    EventStore,
    PostgresEventStore,
)
from carsuggester.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EventRetentionJob:
    """Deletes analytics events past the retention window."""

    def __init__(self, store: EventStore, retention_days: int):
        if retention_days < 1:
            raise ValueError("retention_days must be at least 1")
        self.store = store
        self.retention_days = retention_days
        self.is_running = False
        self.last_run_time: datetime | None = None

    async def run_once(self) -> dict:
        """
        Run a single retention pass.

        Returns:
            dict: {"success", "deleted_events", "cutoff", "duration_seconds"}
            or {"skipped": True, ...} when a pass is already running.
        """
        if self.is_running:
            logger.warning("Event retention job already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        self.is_running = True
        start_time = datetime.now(UTC)
        cutoff = start_time - timedelta(days=self.retention_days)

        result = {"success": True, "deleted_events": 0, "cutoff": cutoff.isoformat()}

        try:
            result["deleted_events"] = await self.store.delete_events_before(cutoff)
            self.last_run_time = datetime.now(UTC)

        except Exception as e:
            logger.error(
                "Event retention job failed", error=str(e), error_type=type(e).__name__
            )
            result["success"] = False
            result["error"] = str(e)

        finally:
            self.is_running = False

        result["duration_seconds"] = round((datetime.now(UTC) - start_time).total_seconds(), 2)
        logger.info("Event retention job completed", **result)
        return result


async def run_event_retention_once() -> dict:
    """Single retention pass for cron-style invocation."""
    db_pool = DatabasePoolManager()
    await db_pool.initialize()
    try:
        job = EventRetentionJob(
            PostgresEventStore(db_pool), settings.ANALYTICS_EVENT_RETENTION_DAYS
        )
        return await job.run_once()
    finally:
        await db_pool.close()


async def start_event_retention_scheduler() -> None:
    """
    Run the retention job forever on ANALYTICS_RETENTION_INTERVAL_HOURS.

    Owns its own database pool so it can run as a standalone worker.
    """
    interval_seconds = settings.ANALYTICS_RETENTION_INTERVAL_HOURS * 3600
    logger.info(
        "Starting event retention scheduler",
        retention_days=settings.ANALYTICS_EVENT_RETENTION_DAYS,
        interval_hours=settings.ANALYTICS_RETENTION_INTERVAL_HOURS,
    )

    db_pool = DatabasePoolManager()
    await db_pool.initialize()
    job = EventRetentionJob(
        PostgresEventStore(db_pool), settings.ANALYTICS_EVENT_RETENTION_DAYS
    )

    try:
        while True:
            await job.run_once()
            await asyncio.sleep(interval_seconds)
    finally:
        await db_pool.close()
        logger.info("Event retention scheduler stopped")


if __name__ == "__main__":
    asyncio.run(start_event_retention_scheduler())
