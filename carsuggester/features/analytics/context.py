"""
Wiring for the engagement analytics feature.

`AnalyticsContext` bundles one EventBuffer with the services that share
it. The API lifespan and the worker each build their own context and
own its start/stop lifecycle.
"""

from dataclasses import dataclass

from fastapi import HTTPException, Request, status

from carsuggester.config import Settings
from carsuggester.features.analytics.repository.event_repository import EventStore
from carsuggester.features.analytics.services.event_buffer import EventBuffer
from carsuggester.features.analytics.services.experiments import ExperimentService
from carsuggester.features.analytics.services.privacy_service import PrivacyService
from carsuggester.features.analytics.services.profile_builder import ProfileService
from carsuggester.features.analytics.services.realtime_metrics import RealtimeMetricsService


@dataclass(slots=True)
class AnalyticsContext:
    buffer: EventBuffer
    profiles: ProfileService
    experiments: ExperimentService
    metrics: RealtimeMetricsService
    privacy: PrivacyService

    async def start(self) -> None:
        self.buffer.start()

    async def stop(self) -> None:
        await self.buffer.stop(drain=True)


def build_analytics_context(store: EventStore, config: Settings) -> AnalyticsContext:
    buffer = EventBuffer(store, interval_seconds=config.ANALYTICS_SYNC_INTERVAL_SECONDS)
    profiles = ProfileService(
        store, buffer, history_limit=config.ANALYTICS_PROFILE_HISTORY_LIMIT
    )
    return AnalyticsContext(
        buffer=buffer,
        profiles=profiles,
        experiments=ExperimentService(store, buffer),
        metrics=RealtimeMetricsService(
            store, window_minutes=config.ANALYTICS_REALTIME_WINDOW_MINUTES
        ),
        privacy=PrivacyService(store, buffer),
    )


def get_analytics(request: Request) -> AnalyticsContext:
    """FastAPI dependency returning the context attached by the lifespan."""
    context = getattr(request.app.state, "analytics", None)
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Analytics service not initialized",
        )
    return context
