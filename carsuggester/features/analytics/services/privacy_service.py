"""
User data privacy operations for engagement analytics.

Covers data portability (export of events, preferences and the derived
profile), erasure of a subject's events, and preference upserts. Every
operation degrades to an empty/False result instead of raising.
"""

import asyncio
from datetime import UTC, datetime
from typing import Any

from carsuggester.features.analytics.repository.event_repository import EventStore
from carsuggester.features.analytics.services.event_buffer import EventBuffer
from carsuggester.features.analytics.services.profile_builder import build_profile
from carsuggester.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DATA_RETENTION_POLICY = "90 days"
EXPORT_EVENT_LIMIT = 1000


class PrivacyService:
    def __init__(self, store: EventStore, buffer: EventBuffer | None = None):
        self.store = store
        self.buffer = buffer

    async def export_user_data(self, user_id: str) -> dict[str, Any]:
        """
        Export everything the analytics feature holds about a subject.

        Returns:
            dict: {"user_id", "session_data": {...}, "export_timestamp",
            "data_retention_policy"}, or {} if the export failed.
        """
        logger.info("Starting analytics data export", user_id=user_id)

        try:
            events, preferences = await asyncio.gather(
                self.store.fetch_user_events(user_id, EXPORT_EVENT_LIMIT),
                self.store.fetch_user_preferences(user_id),
            )
        except Exception as e:
            logger.error("Error exporting user data", user_id=user_id, error=str(e))
            return {}

        profile = build_profile(user_id, events)

        return {
            "user_id": user_id,
            "session_data": {
                "events": [event.to_dict() for event in events],
                "preferences": preferences,
                "personalization_profile": profile.to_dict(),
            },
            "export_timestamp": datetime.now(UTC).isoformat(),
            "data_retention_policy": DATA_RETENTION_POLICY,
        }

    async def delete_user_data(self, user_id: str) -> bool:
        """
        Erase a subject's events, both queued and stored.

        Queued events go first, after any outstanding flush settles, so
        nothing of theirs is synced once the remote delete has run.
        """
        discarded = await self.buffer.discard(user_id) if self.buffer is not None else 0

        try:
            deleted = await self.store.delete_user_events(user_id)
        except Exception as e:
            logger.error("Error deleting user data", user_id=user_id, error=str(e))
            return False

        logger.info(
            "User analytics data deleted",
            user_id=user_id,
            deleted_events=deleted,
            discarded_events=discarded,
        )
        return True

    async def update_user_preferences(self, user_id: str, preference: dict[str, Any]) -> bool:
        try:
            await self.store.upsert_user_preference(user_id, preference)
        except Exception as e:
            logger.error(
                "Error updating user preferences",
                user_id=user_id,
                preference_type=preference.get("preference_type"),
                error=str(e),
            )
            return False

        logger.debug(
            "User preferences updated",
            user_id=user_id,
            preference_type=preference.get("preference_type"),
        )
        return True
