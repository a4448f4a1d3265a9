"""
Realtime engagement metrics for the admin dashboard.
"""

from collections import Counter
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from carsuggester.features.analytics.domain.models import Event
from carsuggester.features.analytics.repository.event_repository import EventStore
from carsuggester.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

TOP_EVENT_TYPES = 5


def calculate_average_session_length(events: Sequence[Event]) -> float:
    """Mean span in milliseconds of sessions that saw more than one event."""
    sessions: dict[str, list[datetime]] = {}
    for event in events:
        sessions.setdefault(event.session_id, []).append(event.timestamp)

    lengths = [
        (max(stamps) - min(stamps)).total_seconds() * 1000
        for stamps in sessions.values()
        if len(stamps) > 1
    ]
    if not lengths:
        return 0.0
    return sum(lengths) / len(lengths)


def calculate_realtime_metrics(events: Sequence[Event]) -> dict[str, Any]:
    events_by_type = Counter(event.event_type for event in events)
    return {
        "total_events": len(events),
        "unique_users": len({event.user_id for event in events}),
        "events_by_type": dict(events_by_type),
        "average_session_length": calculate_average_session_length(events),
        "top_events": [
            [event_type, count] for event_type, count in events_by_type.most_common(TOP_EVENT_TYPES)
        ],
    }


class RealtimeMetricsService:
    def __init__(self, store: EventStore, *, window_minutes: int = 60):
        self.store = store
        self.window_minutes = window_minutes

    async def get_realtime_metrics(self, window_minutes: int | None = None) -> dict[str, Any]:
        """Metrics over the trailing window; empty dict if the store is unavailable."""
        window = window_minutes or self.window_minutes
        since = datetime.now(UTC) - timedelta(minutes=window)

        try:
            events = await self.store.fetch_events_since(since)
        except Exception as e:
            logger.error("Error fetching realtime metrics", error=str(e), window_minutes=window)
            return {}

        metrics = calculate_realtime_metrics(events)
        metrics["window_minutes"] = window
        metrics["generated_at"] = datetime.now(UTC).isoformat()

        logger.info(
            "Realtime metrics compiled",
            window_minutes=window,
            total_events=metrics["total_events"],
            unique_users=metrics["unique_users"],
        )
        return metrics
