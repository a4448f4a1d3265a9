"""
FastAPI entrypoint for the CarSuggester analytics service.

The lifespan owns the two long-lived resources: the psycopg pool and the
analytics context whose buffer syncs events in the background.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from carsuggester.config import settings
from carsuggester.db.pool import DatabasePoolManager
from carsuggester.features.analytics import analytics_router, build_analytics_context
from carsuggester.features.analytics.repository.event_repository import PostgresEventStore
from carsuggester.infrastructure.observability.logging import (
    get_logger,
    log_request,
    setup_logging,
)
from carsuggester.routes import health

setup_logging(log_level=settings.LOG_LEVEL, json_logs=settings.LOG_JSON)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Analytics service starting", environment=settings.environment)

    db_pool = DatabasePoolManager()
    await db_pool.initialize()

    analytics = build_analytics_context(PostgresEventStore(db_pool), settings)
    if settings.ANALYTICS_SYNC_ENABLED:
        await analytics.start()
    else:
        logger.warning("Analytics sync disabled, events stay queued until flushed manually")

    app.state.db_pool = db_pool
    app.state.analytics = analytics

    try:
        yield
    finally:
        logger.info("Analytics service shutting down", pending_events=analytics.buffer.pending)

        # The final drain needs the pool, so it runs first
        try:
            await analytics.stop()
        except Exception as e:
            logger.error("Error stopping analytics buffer", error=str(e))

        await db_pool.close()

        if analytics.buffer.pending:
            logger.warning("Events lost at shutdown", lost_events=analytics.buffer.pending)


app = FastAPI(
    title="CarSuggester Analytics",
    description="Engagement event ingestion, personalization profiles and A/B assignment",
    version="0.1.0",
    debug=settings.debug,
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(analytics_router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """422 without echoing the rejected input, which may not be JSON-renderable (NaN)."""
    errors = [
        {key: value for key, value in error.items() if key != "input"} for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(errors)},
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
