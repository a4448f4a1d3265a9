from collections.abc import Sequence
from datetime import datetime

import pytest

from carsuggester.auth.verify import auth_dependency, optional_auth_dependency
from carsuggester.features.analytics.domain.models import Event, Experiment
from carsuggester.features.analytics.repository.event_repository import EventStoreError


class FakeEventStore:
    """In-memory stand-in for PostgresEventStore."""

    def __init__(self):
        self.events: list[Event] = []
        self.batches: list[list[Event]] = []
        self.experiments: dict[str, Experiment] = {}
        self.preferences: dict[str, dict[str, dict]] = {}
        self.fail_inserts = 0
        self.fail_reads = False
        self.fail_writes = False

    def _check_reads(self, operation: str) -> None:
        if self.fail_reads:
            raise EventStoreError("store unavailable", operation=operation)

    def _check_writes(self, operation: str) -> None:
        if self.fail_writes:
            raise EventStoreError("store unavailable", operation=operation)

    async def insert_events(self, events: Sequence[Event]) -> None:
        if self.fail_inserts:
            self.fail_inserts -= 1
            raise EventStoreError("insert rejected", operation="insert_events")
        batch = list(events)
        for offset, event in enumerate(batch, start=len(self.events) + 1):
            event.id = str(offset)
        self.batches.append(batch)
        self.events.extend(batch)

    async def fetch_user_events(self, user_id: str, limit: int) -> list[Event]:
        self._check_reads("fetch_user_events")
        matching = [event for event in self.events if event.user_id == user_id]
        return sorted(matching, key=lambda event: event.timestamp, reverse=True)[:limit]

    async def fetch_events_since(self, since: datetime) -> list[Event]:
        self._check_reads("fetch_events_since")
        matching = [event for event in self.events if event.timestamp >= since]
        return sorted(matching, key=lambda event: event.timestamp, reverse=True)

    async def delete_user_events(self, user_id: str) -> int:
        self._check_writes("delete_user_events")
        before = len(self.events)
        self.events = [event for event in self.events if event.user_id != user_id]
        return before - len(self.events)

    async def delete_events_before(self, cutoff: datetime) -> int:
        self._check_writes("delete_events_before")
        before = len(self.events)
        self.events = [event for event in self.events if event.timestamp >= cutoff]
        return before - len(self.events)

    async def get_experiment(self, experiment_id: str) -> Experiment | None:
        self._check_reads("get_experiment")
        experiment = self.experiments.get(experiment_id)
        if experiment is None or not experiment.is_active:
            return None
        return experiment

    async def fetch_user_preferences(self, user_id: str) -> list[dict]:
        self._check_reads("fetch_user_preferences")
        return list(self.preferences.get(user_id, {}).values())

    async def upsert_user_preference(self, user_id: str, preference: dict) -> None:
        self._check_writes("upsert_user_preference")
        self.preferences.setdefault(user_id, {})[preference["preference_type"]] = {
            "user_id": user_id,
            **preference,
        }


@pytest.fixture
def fake_store():
    return FakeEventStore()


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": "user-123"}

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[auth_dependency] = auth_override
        app.dependency_overrides[optional_auth_dependency] = auth_override

    return _apply
