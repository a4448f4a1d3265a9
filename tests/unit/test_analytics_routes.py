"""
Tests for the engagement analytics API.
"""

import pytest
from fastapi.testclient import TestClient

from carsuggester.auth.verify import auth_dependency
from carsuggester.config import settings
from carsuggester.features.analytics import build_analytics_context
from carsuggester.features.analytics.domain.models import Experiment
from carsuggester.main import app

client = TestClient(app)


@pytest.fixture
def analytics(fake_store):
    context = build_analytics_context(fake_store, settings)
    app.state.analytics = context
    yield context
    del app.state.analytics
    app.dependency_overrides.clear()


@pytest.fixture
def signed_in(auth_override):
    """Sign in for routes requiring auth while ingestion stays anonymous."""
    app.dependency_overrides[auth_dependency] = auth_override


def test_track_event_anonymous(analytics):
    response = client.post(
        "/analytics/events",
        json={"event_type": "car_viewed", "payload": {"car_id": "c1", "page": "/cars/c1"}},
    )

    assert response.status_code == 202
    data = response.json()
    assert data["accepted"] == 1
    assert data["pending"] == 1
    assert data["session_id"] == analytics.buffer.session_id

    event = analytics.buffer.pending_events()[0]
    assert event.user_id == "anonymous"
    assert event.event_data["page_url"] == "/cars/c1"
    assert event.device_info["platform"] == "api"


def test_track_event_token_subject_wins(analytics, apply_auth_override):
    apply_auth_override(app)

    response = client.post(
        "/analytics/events",
        json={"event_type": "car_saved", "payload": {"car_id": "c9"}, "user_id": "someone-else"},
    )

    assert response.status_code == 202
    assert analytics.buffer.pending_events("user-123")[0].event_type == "car_saved"
    assert analytics.buffer.pending_events("someone-else") == []


def test_track_event_rejects_empty_type(analytics):
    response = client.post("/analytics/events", json={"event_type": ""})

    assert response.status_code == 422
    assert analytics.buffer.pending == 0


def test_track_event_batch_keeps_order(analytics):
    response = client.post(
        "/analytics/events/batch",
        json={
            "events": [
                {"event_type": "search_performed", "payload": {"search_query": "suv"}},
                {"event_type": "car_viewed", "payload": {"car_id": "c1"}},
                {"event_type": "contact_dealer", "device_info": {"platform": "ios"}},
            ]
        },
    )

    assert response.status_code == 202
    assert response.json()["accepted"] == 3
    queued = analytics.buffer.pending_events()
    assert [event.event_type for event in queued] == [
        "search_performed",
        "car_viewed",
        "contact_dealer",
    ]
    assert queued[2].device_info == {"platform": "ios"}


def test_flush_endpoint(analytics, signed_in, fake_store):
    assert client.post("/analytics/flush").json()["status"] == "empty"

    client.post("/analytics/events", json={"event_type": "car_viewed"})
    response = client.post("/analytics/flush")

    assert response.status_code == 200
    assert response.json() == {
        "status": "success",
        "ok": True,
        "sent": 1,
        "requeued": 0,
        "error": None,
    }
    assert len(fake_store.events) == 1


def test_flush_endpoint_reports_failure(analytics, signed_in, fake_store):
    fake_store.fail_inserts = 1
    client.post("/analytics/events", json={"event_type": "car_viewed"})

    data = client.post("/analytics/flush").json()

    assert data["status"] == "failure"
    assert data["ok"] is False
    assert data["requeued"] == 1
    assert analytics.buffer.pending == 1


def test_status_endpoint(analytics, signed_in):
    data = client.get("/analytics/status").json()

    assert data["session_id"] == analytics.buffer.session_id
    assert data["is_running"] is False
    assert data["pending"] == 0


def test_profile_requires_auth(analytics):
    response = client.get("/analytics/profile")

    assert response.status_code in (401, 403)


def test_profile_includes_pending_events(analytics, apply_auth_override):
    apply_auth_override(app)
    analytics.buffer.track_car_view("c1", 40000, 0.9, "user-123", car_brand="Mazda", car_price=30000)

    synced_only = client.get("/analytics/profile").json()
    merged = client.get("/analytics/profile", params={"include_pending": True}).json()

    assert synced_only["user_id"] == "user-123"
    assert synced_only["price_range"] == {"min": 0, "max": 100000}
    assert merged["preferred_brands"] == ["Mazda"]
    assert merged["price_range"] == {"min": 24000, "max": 36000}
    assert merged["view_history"] == ["c1"]


def test_recommendations_endpoint(analytics, apply_auth_override, fake_store):
    apply_auth_override(app)
    analytics.buffer.track_car_view("c1", 1000, 0.1, "user-123", car_brand="BMW", car_price=50000)
    client.post("/analytics/flush")

    data = client.get("/analytics/recommendations").json()

    assert data["user_id"] == "user-123"
    assert data["recommendations"] == ["BMW_recommendation", "price_range_40000_60000"]
    assert analytics.buffer.pending_events("user-123")[-1].event_type == (
        "recommendations_generated"
    )


def test_experiment_variant_endpoint(analytics, fake_store):
    fake_store.experiments["search_ui_test"] = Experiment("search_ui_test", is_active=True)

    data = client.get("/analytics/experiments/search_ui_test/variant").json()
    missing = client.get("/analytics/experiments/unknown/variant").json()

    assert data["user_id"] == "anonymous"
    assert data["variant"] in ("control", "treatment")
    assert missing["variant"] == "control"
    assert analytics.buffer.pending == 1


def test_realtime_metrics_endpoint(analytics, signed_in):
    client.post("/analytics/events", json={"event_type": "car_viewed", "user_id": "u1"})
    client.post("/analytics/events", json={"event_type": "car_viewed", "user_id": "u2"})
    client.post("/analytics/flush")

    data = client.get("/analytics/metrics/realtime", params={"window_minutes": 5}).json()

    assert data["total_events"] == 2
    assert data["unique_users"] == 2
    assert data["window_minutes"] == 5


def test_realtime_metrics_rejects_bad_window(analytics, signed_in):
    response = client.get("/analytics/metrics/realtime", params={"window_minutes": 0})

    assert response.status_code == 422


def test_preferences_export_and_delete(analytics, apply_auth_override, fake_store):
    apply_auth_override(app)
    client.post("/analytics/events", json={"event_type": "car_saved", "payload": {"car_id": "c3"}})
    client.post("/analytics/flush")

    updated = client.put(
        "/analytics/preferences",
        json={"preference_type": "body_style", "preference_value": "suv", "confidence_score": 0.8},
    ).json()
    export = client.get("/analytics/export").json()
    deleted = client.delete("/analytics/data").json()

    assert updated == {"updated": True, "preference_type": "body_style"}
    assert export["user_id"] == "user-123"
    assert export["session_data"]["personalization_profile"]["saved_cars"] == ["c3"]
    assert export["session_data"]["preferences"][0]["confidence_score"] == 0.8
    assert deleted["success"] is True
    assert [event for event in fake_store.events if event.user_id == "user-123"] == []


def test_routes_unavailable_before_startup():
    response = client.post("/analytics/events", json={"event_type": "car_viewed"})

    assert response.status_code == 503


@pytest.mark.parametrize(
    "path", ["/analytics/flush", "/analytics/status", "/analytics/metrics/realtime"]
)
def test_operational_routes_require_auth(analytics, path):
    method = client.post if path.endswith("flush") else client.get

    response = method(path)

    assert response.status_code in (401, 403)


@pytest.mark.parametrize(
    "body",
    [
        '{"event_type": "car_viewed", "payload": {"note": "a\\u0000b"}}',
        '{"event_type": "car_viewed", "payload": {"car_price": NaN}}',
        '{"event_type": "car_viewed", "payload": {"specs": {"hp": Infinity}}}',
        '{"event_type": "car_viewed", "payload": {"tags": ["ok", "bad\\u0000"]}}',
        '{"event_type": "car_viewed", "device_info": {"model": -Infinity}}',
        '{"event_type": "car_\\u0000viewed"}',
    ],
)
def test_track_event_rejects_values_postgres_cannot_store(analytics, body):
    response = client.post(
        "/analytics/events", content=body, headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 422
    assert analytics.buffer.pending == 0


def test_batch_with_one_unstorable_event_is_rejected_whole(analytics):
    body = (
        '{"events": [{"event_type": "car_viewed"},'
        ' {"event_type": "car_saved", "payload": {"note": "x\\u0000"}}]}'
    )

    response = client.post(
        "/analytics/events/batch", content=body, headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 422
    assert analytics.buffer.pending == 0


def test_rejected_payload_never_blocks_later_syncs(analytics, signed_in, fake_store):
    client.post(
        "/analytics/events",
        content='{"event_type": "car_viewed", "payload": {"price": NaN}}',
        headers={"Content-Type": "application/json"},
    )
    client.post("/analytics/events", json={"event_type": "car_viewed", "payload": {"car_id": "c1"}})

    data = client.post("/analytics/flush").json()

    assert data["status"] == "success"
    assert data["sent"] == 1
    assert analytics.buffer.pending == 0


def test_preference_value_must_be_storable(analytics, apply_auth_override):
    apply_auth_override(app)

    response = client.put(
        "/analytics/preferences",
        content='{"preference_type": "budget", "preference_value": {"max": NaN}}',
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 422
