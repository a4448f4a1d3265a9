"""
Storage access for analytics events, experiments and preferences.

`EventStore` is the shape the services depend on. `PostgresEventStore`
talks to the Supabase Postgres tables through the shared psycopg pool.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol

from psycopg.types.json import Jsonb

from carsuggester.db.helpers import (
    DatabaseError,
    execute_many,
    execute_query,
    fetch_all,
    fetch_one,
)
from carsuggester.db.pool import DatabasePoolManager
from carsuggester.features.analytics.domain.models import Event, Experiment
from carsuggester.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EventStoreError(DatabaseError):
    """Raised when the remote event store rejects an operation."""


def _store_error(message: str, operation: str, error: Exception) -> EventStoreError:
    return EventStoreError(
        f"{message}: {error}",
        operation=operation,
        recoverable=getattr(error, "recoverable", True),
    )


class EventStore(Protocol):
    async def insert_events(self, events: Sequence[Event]) -> None: ...

    async def fetch_user_events(self, user_id: str, limit: int) -> list[Event]: ...

    async def fetch_events_since(self, since: datetime) -> list[Event]: ...

    async def delete_user_events(self, user_id: str) -> int: ...

    async def delete_events_before(self, cutoff: datetime) -> int: ...

    async def get_experiment(self, experiment_id: str) -> Experiment | None: ...

    async def fetch_user_preferences(self, user_id: str) -> list[dict[str, Any]]: ...

    async def upsert_user_preference(self, user_id: str, preference: dict[str, Any]) -> None: ...


class PostgresEventStore:
    """EventStore backed by the user_events, ab_experiments and user_preferences tables."""

    _EVENT_COLUMNS = "id, user_id, event_type, event_data, timestamp, session_id, device_info"

    def __init__(self, pool: DatabasePoolManager):
        self.pool = pool

    async def insert_events(self, events: Sequence[Event]) -> None:
        query = """
            INSERT INTO user_events
                (user_id, event_type, event_data, timestamp, session_id, device_info)
            VALUES (%s, %s, %s, %s, %s, %s)
        """
        params = [
            (
                event.user_id,
                event.event_type,
                Jsonb(event.event_data),
                event.timestamp,
                event.session_id,
                Jsonb(event.device_info),
            )
            for event in events
        ]

        try:
            await execute_many(self.pool, query, params)
        except (DatabaseError, RuntimeError) as e:
            raise _store_error("Event insert failed", "insert_events", e) from e

    async def fetch_user_events(self, user_id: str, limit: int) -> list[Event]:
        query = f"""
            SELECT {self._EVENT_COLUMNS}
            FROM user_events
            WHERE user_id = %s
            ORDER BY timestamp DESC
            LIMIT %s
        """
        try:
            rows = await fetch_all(self.pool, query, (user_id, limit))
        except (DatabaseError, RuntimeError) as e:
            raise _store_error("Event fetch failed", "fetch_user_events", e) from e
        return [Event.from_row(row) for row in rows]

    async def fetch_events_since(self, since: datetime) -> list[Event]:
        query = f"""
            SELECT {self._EVENT_COLUMNS}
            FROM user_events
            WHERE timestamp >= %s
            ORDER BY timestamp DESC
        """
        try:
            rows = await fetch_all(self.pool, query, (since,))
        except (DatabaseError, RuntimeError) as e:
            raise _store_error("Event fetch failed", "fetch_events_since", e) from e
        return [Event.from_row(row) for row in rows]

    async def delete_user_events(self, user_id: str) -> int:
        try:
            deleted = await execute_query(
                self.pool, "DELETE FROM user_events WHERE user_id = %s", (user_id,)
            )
        except (DatabaseError, RuntimeError) as e:
            raise _store_error("Event delete failed", "delete_user_events", e) from e

        logger.info("User events deleted", user_id=user_id, deleted=deleted)
        return deleted

    async def delete_events_before(self, cutoff: datetime) -> int:
        try:
            return await execute_query(
                self.pool, "DELETE FROM user_events WHERE timestamp < %s", (cutoff,)
            )
        except (DatabaseError, RuntimeError) as e:
            raise _store_error("Event retention delete failed", "delete_events_before", e) from e

    async def get_experiment(self, experiment_id: str) -> Experiment | None:
        query = """
            SELECT experiment_id, name, description, is_active
            FROM ab_experiments
            WHERE experiment_id = %s
              AND is_active = true
            LIMIT 1
        """
        try:
            row = await fetch_one(self.pool, query, (experiment_id,))
        except (DatabaseError, RuntimeError) as e:
            raise _store_error("Experiment lookup failed", "get_experiment", e) from e

        if not row:
            return None

        return Experiment(
            experiment_id=row["experiment_id"],
            is_active=bool(row.get("is_active")),
            name=row.get("name"),
            description=row.get("description"),
        )

    async def fetch_user_preferences(self, user_id: str) -> list[dict[str, Any]]:
        query = """
            SELECT user_id, preference_type, preference_value, confidence_score,
                   created_at, updated_at
            FROM user_preferences
            WHERE user_id = %s
        """
        try:
            return await fetch_all(self.pool, query, (user_id,))
        except (DatabaseError, RuntimeError) as e:
            raise _store_error("Preference fetch failed", "fetch_user_preferences", e) from e

    async def upsert_user_preference(self, user_id: str, preference: dict[str, Any]) -> None:
        query = """
            INSERT INTO user_preferences
                (user_id, preference_type, preference_value, confidence_score,
                 created_at, updated_at)
            VALUES (%s, %s, %s, %s, NOW(), NOW())
            ON CONFLICT (user_id, preference_type) DO UPDATE
            SET preference_value = EXCLUDED.preference_value,
                confidence_score = EXCLUDED.confidence_score,
                updated_at = NOW()
        """
        params = (
            user_id,
            preference["preference_type"],
            Jsonb(preference.get("preference_value")),
            float(preference.get("confidence_score", 0.0)),
        )
        try:
            await execute_query(self.pool, query, params)
        except (DatabaseError, RuntimeError) as e:
            raise _store_error("Preference upsert failed", "upsert_user_preference", e) from e
