"""
Domain models for the engagement analytics feature.

Lightweight dataclasses shared by the buffer, the repositories and the
API layer. Row conversion lives here so every store speaks the same
column names as the Supabase `user_events` table.
"""

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

ANONYMOUS_USER = "anonymous"

EngagementLevel = Literal["low", "medium", "high"]
Variant = Literal["control", "treatment"]
FlushStatus = Literal["success", "failure", "empty", "skipped"]


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return datetime.now(UTC)


@dataclass(slots=True)
class Event:
    """One recorded user interaction."""

    user_id: str
    event_type: str
    event_data: dict[str, Any]
    timestamp: datetime
    session_id: str
    device_info: dict[str, Any] = field(default_factory=dict)
    id: str | None = None

    def to_row(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "event_type": self.event_type,
            "event_data": self.event_data,
            "timestamp": self.timestamp,
            "session_id": self.session_id,
            "device_info": self.device_info,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Event":
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            user_id=row.get("user_id") or ANONYMOUS_USER,
            event_type=row.get("event_type") or "",
            event_data=dict(row.get("event_data") or {}),
            timestamp=_parse_timestamp(row.get("timestamp")),
            session_id=row.get("session_id") or "",
            device_info=dict(row.get("device_info") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        data = self.to_row()
        data["id"] = self.id
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass(slots=True)
class PriceRange:
    min: float
    max: float


@dataclass(slots=True)
class PersonalizationProfile:
    """Behavioral summary derived from a subject's event history."""

    user_id: str
    interests: list[str]
    price_range: PriceRange
    preferred_brands: list[str]
    preferred_features: list[str]
    location: str
    search_history: list[str]
    view_history: list[str]
    saved_cars: list[str]
    behavior_score: float
    engagement_level: EngagementLevel

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class Experiment:
    """Represents an ab_experiments row."""

    experiment_id: str
    is_active: bool
    name: str | None = None
    description: str | None = None


@dataclass(slots=True)
class FlushResult:
    """Outcome of a single buffer flush."""

    status: FlushStatus
    sent: int = 0
    requeued: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != "failure"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["ok"] = self.ok
        return data
