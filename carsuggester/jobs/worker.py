"""
Background worker entrypoint for the analytics service.

    python -m carsuggester.jobs.worker [job]

The job name comes from the first CLI argument, then WORKER_JOB, then
defaults to the retention scheduler.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable
from typing import Any

from carsuggester.config import settings
from carsuggester.infrastructure.observability.logging import get_logger, setup_logging
from carsuggester.jobs.event_retention_job import (
    run_event_retention_once,
    start_event_retention_scheduler,
)

logger = get_logger(__name__)

DEFAULT_JOB = "event_retention"

JobCoroutine = Callable[[], Awaitable[Any]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "event_retention": start_event_retention_scheduler,
    "event_retention_once": run_event_retention_once,
}


def _resolve_job_name(argv: list[str] | None = None) -> str:
    args = sys.argv[1:] if argv is None else argv
    name = args[0] if args else os.getenv("WORKER_JOB", DEFAULT_JOB)
    return name.strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    name = (job_name or _resolve_job_name()).strip().lower()
    job = JOB_REGISTRY.get(name)
    if job is None:
        raise ValueError(
            f"Unknown worker job '{name}'. Available jobs: {', '.join(sorted(JOB_REGISTRY))}"
        )

    logger.info("Starting background worker", job=name, environment=settings.environment)
    result = await job()
    if result is not None:
        logger.info("Background job finished", job=name, result=result)


def main() -> None:
    setup_logging(log_level=settings.LOG_LEVEL, json_logs=settings.LOG_JSON)
    asyncio.run(run_worker(_resolve_job_name()))


if __name__ == "__main__":
    main()
