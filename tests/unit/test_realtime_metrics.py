from datetime import UTC, datetime, timedelta

import pytest

from carsuggester.features.analytics.domain.models import Event
from carsuggester.features.analytics.services.realtime_metrics import (
    RealtimeMetricsService,
    calculate_average_session_length,
    calculate_realtime_metrics,
)


def _event(event_type, user_id, session_id, at):
    return Event(
        user_id=user_id,
        event_type=event_type,
        event_data={},
        timestamp=at,
        session_id=session_id,
    )


def test_realtime_metrics_counts_and_top_events():
    start = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    events = [
        _event("car_viewed", "u1", "s1", start),
        _event("search_performed", "u1", "s1", start + timedelta(seconds=10)),
        _event("car_viewed", "u2", "s2", start + timedelta(seconds=5)),
        _event("car_viewed", "u2", "s2", start + timedelta(seconds=35)),
        _event("contact_dealer", "u3", "s3", start),
    ]

    metrics = calculate_realtime_metrics(events)

    assert metrics["total_events"] == 5
    assert metrics["unique_users"] == 3
    assert metrics["events_by_type"] == {
        "car_viewed": 3,
        "search_performed": 1,
        "contact_dealer": 1,
    }
    assert metrics["top_events"][0] == ["car_viewed", 3]
    assert metrics["top_events"][1:] == [["search_performed", 1], ["contact_dealer", 1]]
    # s1 spans 10s, s2 spans 30s, s3 has a single event and is ignored
    assert metrics["average_session_length"] == pytest.approx(20000)


def test_average_session_length_without_multi_event_sessions():
    now = datetime.now(UTC)
    assert calculate_average_session_length([]) == 0
    assert calculate_average_session_length([_event("x", "u", "s", now)]) == 0


@pytest.mark.asyncio
async def test_service_reports_trailing_window(fake_store):
    now = datetime.now(UTC)
    fake_store.events = [
        _event("car_viewed", "u1", "s1", now - timedelta(minutes=5)),
        _event("car_viewed", "u2", "s2", now - timedelta(hours=3)),
    ]
    service = RealtimeMetricsService(fake_store, window_minutes=60)

    metrics = await service.get_realtime_metrics()

    assert metrics["total_events"] == 1
    assert metrics["window_minutes"] == 60
    assert "generated_at" in metrics


@pytest.mark.asyncio
async def test_service_returns_empty_dict_on_failure(fake_store):
    fake_store.fail_reads = True
    service = RealtimeMetricsService(fake_store)

    assert await service.get_realtime_metrics(15) == {}
