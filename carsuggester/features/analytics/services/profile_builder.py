"""
Personalization profile derivation.

`build_profile` is a pure function of an event slice (newest first, as
returned by the store). `ProfileService` fetches that slice and wraps the
derivation so callers always get a profile back, never an exception.
"""

import math
from collections import Counter
from collections.abc import Iterable, Sequence
from typing import Any

from carsuggester.features.analytics.domain.models import (
    EngagementLevel,
    Event,
    PersonalizationProfile,
    PriceRange,
)
from carsuggester.features.analytics.repository.event_repository import EventStore
from carsuggester.features.analytics.services.event_buffer import EventBuffer
from carsuggester.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PRICE_RANGE = (0.0, 100000.0)
PRICE_FLOOR_FACTOR = 0.8
PRICE_CEILING_FACTOR = 1.2

MAX_PREFERRED_BRANDS = 5
MAX_SEARCH_HISTORY = 20
MAX_VIEW_HISTORY = 50
MAX_RECOMMENDATIONS = 10

BEHAVIOR_WEIGHTS: dict[str, float] = {
    "car_viewed": 1.0,
    "car_saved": 5.0,
    "contact_dealer": 10.0,
    "search_performed": 2.0,
}
DEFAULT_BEHAVIOR_WEIGHT = 0.5
MAX_BEHAVIOR_SCORE = 1000.0

# Upper bounds (exclusive) for each engagement level
ENGAGEMENT_THRESHOLDS: list[tuple[float, EngagementLevel]] = [
    (50.0, "low"),
    (200.0, "medium"),
]


def _as_price(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        if isinstance(value, (int, float)):
            price = float(value)
        elif isinstance(value, str):
            price = float(value.replace(",", "").strip())
        else:
            return None
    except (ValueError, OverflowError):
        return None
    # nan, inf and overflowing literals such as "1e400" never bound a band
    if not math.isfinite(price) or not price:
        return None
    return price


def _of_type(events: Iterable[Event], event_type: str) -> list[Event]:
    return [event for event in events if event.event_type == event_type]


def extract_interests(events: Sequence[Event]) -> list[str]:
    interests: dict[str, None] = {}
    for event in events:
        tag = None
        if event.event_type == "car_viewed":
            tag = event.event_data.get("car_category")
        elif event.event_type == "search_performed":
            tag = event.event_data.get("search_intent")
        if tag:
            interests.setdefault(str(tag), None)
    return list(interests)


def extract_price_range(events: Sequence[Event]) -> PriceRange:
    prices = [
        price
        for event in _of_type(events, "car_viewed")
        if (price := _as_price(event.event_data.get("car_price"))) is not None
    ]
    if not prices:
        return PriceRange(min=DEFAULT_PRICE_RANGE[0], max=DEFAULT_PRICE_RANGE[1])

    return PriceRange(
        min=min(prices) * PRICE_FLOOR_FACTOR,
        max=max(prices) * PRICE_CEILING_FACTOR,
    )


def extract_preferred_brands(events: Sequence[Event]) -> list[str]:
    # Counter keeps first-encounter order, most_common sorts stably
    counts = Counter(
        str(event.event_data["car_brand"])
        for event in _of_type(events, "car_viewed")
        if event.event_data.get("car_brand")
    )
    return [brand for brand, _ in counts.most_common(MAX_PREFERRED_BRANDS)]


def extract_search_history(events: Sequence[Event]) -> list[str]:
    queries = [
        str(event.event_data.get("search_query") or "")
        for event in _of_type(events, "search_performed")
    ]
    return queries[:MAX_SEARCH_HISTORY]


def extract_view_history(events: Sequence[Event]) -> list[str]:
    car_ids = [str(event.event_data.get("car_id") or "") for event in _of_type(events, "car_viewed")]
    return car_ids[:MAX_VIEW_HISTORY]


def extract_saved_cars(events: Sequence[Event]) -> list[str]:
    return [
        str(event.event_data["car_id"])
        for event in _of_type(events, "car_saved")
        if event.event_data.get("car_id")
    ]


def calculate_behavior_score(events: Iterable[Event]) -> float:
    score = sum(BEHAVIOR_WEIGHTS.get(event.event_type, DEFAULT_BEHAVIOR_WEIGHT) for event in events)
    return min(score, MAX_BEHAVIOR_SCORE)


def determine_engagement_level(score: float) -> EngagementLevel:
    for upper_bound, level in ENGAGEMENT_THRESHOLDS:
        if score < upper_bound:
            return level
    return "high"


def build_profile(user_id: str, events: Sequence[Event]) -> PersonalizationProfile:
    """Derive a profile from events ordered newest first."""
    behavior_score = calculate_behavior_score(events)
    return PersonalizationProfile(
        user_id=user_id,
        interests=extract_interests(events),
        price_range=extract_price_range(events),
        preferred_brands=extract_preferred_brands(events),
        # TODO: derive from car_feature tags once listing views carry them
        preferred_features=[],
        location="Unknown",
        search_history=extract_search_history(events),
        view_history=extract_view_history(events),
        saved_cars=extract_saved_cars(events),
        behavior_score=behavior_score,
        engagement_level=determine_engagement_level(behavior_score),
    )


def _format_price(value: float) -> str:
    value = round(value, 2)
    return str(int(value)) if float(value).is_integer() else str(value)


def compute_recommendations(profile: PersonalizationProfile) -> list[str]:
    """Placeholder recommendations: one slot per preferred brand plus the price band."""
    recommendations = [f"{brand}_recommendation" for brand in profile.preferred_brands]
    recommendations.append(
        f"price_range_{_format_price(profile.price_range.min)}_{_format_price(profile.price_range.max)}"
    )
    return recommendations[:MAX_RECOMMENDATIONS]


class ProfileService:
    """Fetches a subject's history and derives profiles and recommendations from it."""

    def __init__(
        self,
        store: EventStore,
        buffer: EventBuffer | None = None,
        *,
        history_limit: int = 100,
    ):
        self.store = store
        self.buffer = buffer
        self.history_limit = history_limit

    async def get_user_events(self, user_id: str, *, include_pending: bool = False) -> list[Event]:
        """
        Most recent events for a subject, newest first.

        Returns an empty list if the store is unreachable.
        """
        try:
            events = await self.store.fetch_user_events(user_id, self.history_limit)
        except Exception as e:
            logger.error(
                "Failed to fetch user events",
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            events = []

        if include_pending and self.buffer is not None:
            pending = self.buffer.pending_events(user_id)
            if pending:
                events = sorted(
                    [*events, *pending], key=lambda event: event.timestamp, reverse=True
                )[: self.history_limit]

        return events

    async def build_profile(
        self, user_id: str, *, include_pending: bool = False
    ) -> PersonalizationProfile:
        events = await self.get_user_events(user_id, include_pending=include_pending)
        profile = build_profile(user_id, events)
        logger.debug(
            "Personalization profile built",
            user_id=user_id,
            event_count=len(events),
            behavior_score=profile.behavior_score,
            engagement_level=profile.engagement_level,
        )
        return profile

    async def recommend(self, user_id: str) -> list[str]:
        try:
            profile = await self.build_profile(user_id)
            recommendations = compute_recommendations(profile)
        except Exception as e:
            logger.error("Error generating recommendations", user_id=user_id, error=str(e))
            return []

        if self.buffer is not None:
            self.buffer.record(
                "recommendations_generated",
                {
                    "recommendations_count": len(recommendations),
                    "user_profile": profile.to_dict(),
                },
                user_id,
            )

        return recommendations
