"""
In-memory engagement event buffer with periodic sync to the event store.

Events are recorded synchronously into a process-local queue and flushed
in bulk on a fixed interval. A failed flush puts the batch back at the
head of the queue so the next flush retries it together with anything
recorded in the meantime (at-least-once, no deduplication).
"""

import asyncio
import secrets
import string
import time
from datetime import UTC, datetime
from typing import Any

from carsuggester.features.analytics.domain.models import (
    ANONYMOUS_USER,
    Event,
    FlushResult,
)
from carsuggester.features.analytics.repository.event_repository import EventStore
from carsuggester.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SYNC_INTERVAL_SECONDS = 30.0
DEFAULT_USER_AGENT = "CarSuggester Mobile"

_SESSION_ALPHABET = string.ascii_lowercase + string.digits

ACTION_WEIGHTS: dict[str, int] = {
    "view": 1,
    "tap": 2,
    "swipe": 2,
    "share": 5,
    "save": 7,
    "contact": 10,
}

# Checked in order, first match wins
SEARCH_INTENT_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("budget_conscious", ("cheap", "budget")),
    ("luxury_seeker", ("luxury", "premium")),
    ("family_oriented", ("family", "suv")),
    ("performance_oriented", ("sport", "fast")),
]


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def generate_session_id() -> str:
    """Build a `session_<epoch-ms>_<suffix>` identifier."""
    suffix = "".join(secrets.choice(_SESSION_ALPHABET) for _ in range(9))
    return f"session_{_epoch_ms()}_{suffix}"


def analyze_search_intent(query: str) -> str:
    lowered = (query or "").lower()
    for intent, keywords in SEARCH_INTENT_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return intent
    return "general_browsing"


def calculate_view_quality(duration_ms: float, scroll_depth: float) -> str:
    if duration_ms > 30000 and scroll_depth > 0.7:
        return "high"
    if duration_ms > 10000 and scroll_depth > 0.3:
        return "medium"
    return "low"


def action_weight(action: str) -> int:
    return ACTION_WEIGHTS.get(action, 1)


class EventBuffer:
    """
    Process-local event queue plus the periodic flush task.

    Owned by whoever constructs it (the API lifespan or the worker) and
    passed explicitly to collaborators. `start()` and `stop()` bound the
    lifetime of the background sync task.
    """

    def __init__(
        self,
        store: EventStore,
        *,
        interval_seconds: float = DEFAULT_SYNC_INTERVAL_SECONDS,
        platform: str = "api",
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.store = store
        self.interval_seconds = interval_seconds
        self.platform = platform
        self.user_agent = user_agent
        self.session_id = generate_session_id()

        self._queue: list[Event] = []
        self._flushing = False
        # Set whenever no flush is outstanding
        self._flush_idle = asyncio.Event()
        self._flush_idle.set()
        self._task: asyncio.Task | None = None
        self.last_flush_time: datetime | None = None
        self.last_flush_result: FlushResult | None = None

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_flushing(self) -> bool:
        return self._flushing

    def pending_events(self, user_id: str | None = None) -> list[Event]:
        """Snapshot of queued events, optionally for one subject."""
        if user_id is None:
            return list(self._queue)
        return [event for event in self._queue if event.user_id == user_id]

    async def wait_for_flush(self) -> None:
        """Return once no flush is in progress."""
        while self._flushing:
            await self._flush_idle.wait()

    async def discard(self, user_id: str) -> int:
        """
        Drop every queued event for `user_id`.

        Waits for an outstanding flush first, so a batch it re-queues on
        failure is dropped too. Returns the number of events removed.
        """
        await self.wait_for_flush()
        kept = [event for event in self._queue if event.user_id != user_id]
        removed = len(self._queue) - len(kept)
        self._queue = kept
        if removed:
            logger.info("Discarded queued events", user_id=user_id, discarded=removed)
        return removed

    def _device_info(self) -> dict[str, Any]:
        return {"platform": self.platform, "timestamp": _epoch_ms()}

    def record(
        self,
        event_type: str,
        payload: dict[str, Any] | None = None,
        user_id: str | None = None,
        device_info: dict[str, Any] | None = None,
    ) -> Event | None:
        """
        Queue one interaction event.

        Never raises; returns the queued Event, or None if it could not be built.
        """
        try:
            data = dict(payload or {})
            event_data = {
                **data,
                "timestamp": _epoch_ms(),
                "page_url": data.get("page") or "unknown",
                "user_agent": self.user_agent,
            }
            event = Event(
                user_id=user_id or ANONYMOUS_USER,
                event_type=event_type,
                event_data=event_data,
                timestamp=datetime.now(UTC),
                session_id=self.session_id,
                device_info=dict(device_info) if device_info else self._device_info(),
            )
        except Exception as e:
            logger.error("Failed to record engagement event", event_type=event_type, error=str(e))
            return None

        self._queue.append(event)
        logger.debug(
            "Tracked engagement event",
            event_type=event_type,
            user_id=event.user_id,
            pending=len(self._queue),
        )
        return event

    def track_search(
        self,
        search_query: str,
        filters: dict[str, Any] | None,
        results_count: int,
        user_id: str | None = None,
    ) -> Event | None:
        return self.record(
            "search_performed",
            {
                "search_query": search_query,
                "filters_applied": filters or {},
                "results_count": results_count,
                "search_intent": analyze_search_intent(search_query),
            },
            user_id,
        )

    def track_car_view(
        self,
        car_id: str,
        view_duration_ms: float,
        scroll_depth: float,
        user_id: str | None = None,
        **car_fields: Any,
    ) -> Event | None:
        """Record a `car_viewed` event; extra fields such as car_price or car_brand ride along."""
        return self.record(
            "car_viewed",
            {
                **car_fields,
                "car_id": car_id,
                "view_duration": view_duration_ms,
                "scroll_depth": scroll_depth,
                "engagement_quality": calculate_view_quality(view_duration_ms, scroll_depth),
            },
            user_id,
        )

    def track_conversion(
        self,
        conversion_type: str,
        value: float,
        metadata: dict[str, Any] | None = None,
        user_id: str | None = None,
    ) -> Event | None:
        return self.record(
            "conversion",
            {
                "conversion_type": conversion_type,
                "conversion_value": value,
                **(metadata or {}),
            },
            user_id,
        )

    def track_story_interaction(
        self, story_type: str, action: str, user_id: str | None = None
    ) -> Event | None:
        return self.record(
            "story_interaction",
            {
                "story_type": story_type,
                "action": action,
                "engagement_level": action_weight(action),
            },
            user_id,
        )

    async def flush(self) -> FlushResult:
        """
        Send every queued event to the store in one bulk insert.

        Never raises. A flush that starts while another is outstanding is
        skipped rather than run concurrently.
        """
        if self._flushing:
            logger.debug("Event flush already in progress, skipping", pending=len(self._queue))
            return FlushResult(status="skipped")

        if not self._queue:
            return FlushResult(status="empty")

        self._flushing = True
        self._flush_idle.clear()
        batch = self._queue
        self._queue = []

        try:
            await self.store.insert_events(batch)

        except asyncio.CancelledError:
            self._queue[:0] = batch
            raise

        except Exception as e:
            # Events recorded during the attempt stay behind the failed batch
            self._queue[:0] = batch
            result = FlushResult(
                status="failure",
                requeued=len(batch),
                error=f"{type(e).__name__}: {e}",
            )
            logger.warning(
                "Event sync failed, batch re-queued",
                batch_size=len(batch),
                pending=len(self._queue),
                error=str(e),
                error_type=type(e).__name__,
                recoverable=getattr(e, "recoverable", True),
            )

        else:
            result = FlushResult(status="success", sent=len(batch))
            logger.debug("Synced engagement events", event_count=len(batch))

        finally:
            self._flushing = False
            self._flush_idle.set()

        self.last_flush_time = datetime.now(UTC)
        self.last_flush_result = result
        return result

    async def _sync_loop(self) -> None:
        logger.info("Event sync loop started", interval_seconds=self.interval_seconds)
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.flush()

    def start(self) -> None:
        """Start the periodic flush task on the running event loop."""
        if self.is_running:
            logger.warning("Event buffer already running")
            return

        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._sync_loop(), name="analytics-event-sync")
        logger.info(
            "Event buffer started",
            session_id=self.session_id,
            interval_seconds=self.interval_seconds,
        )

    async def stop(self, drain: bool = True) -> FlushResult | None:
        """
        Cancel the periodic task and optionally attempt one final flush.

        The final flush is best-effort; a failure leaves the events queued.
        """
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        # A flush started elsewhere (e.g. over HTTP) must finish before the final drain
        await self.wait_for_flush()
        result = await self.flush() if drain else None
        logger.info(
            "Event buffer stopped",
            pending=len(self._queue),
            final_flush=result.status if result else None,
        )
        return result

    def status(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "is_running": self.is_running,
            "is_flushing": self._flushing,
            "pending": len(self._queue),
            "interval_seconds": self.interval_seconds,
            "last_flush_time": self.last_flush_time.isoformat() if self.last_flush_time else None,
            "last_flush_result": self.last_flush_result.to_dict() if self.last_flush_result else None,
        }
