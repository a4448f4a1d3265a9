# models/api/analytics_request.py
"""
Request bodies for the engagement analytics endpoints.

Event payloads end up in Postgres jsonb columns, which reject NaN and
Infinity and any string containing a NUL character. Such values are
refused here with a 422 so they never reach the sync queue.
"""

import math
from typing import Any

from pydantic import BaseModel, Field, ValidationInfo, field_validator


def ensure_storable(value: Any, path: str = "value") -> Any:
    """Raise ValueError if `value` holds anything Postgres jsonb/text cannot store."""
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"{path} must be a finite number")
    elif isinstance(value, str):
        if "\x00" in value:
            raise ValueError(f"{path} must not contain NUL characters")
    elif isinstance(value, dict):
        for key, item in value.items():
            ensure_storable(key, f"{path} key")
            ensure_storable(item, f"{path}.{key}")
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            ensure_storable(item, f"{path}[{index}]")
    return value


class TrackEventRequest(BaseModel):
    """A single interaction event sent by the mobile app."""

    event_type: str = Field(..., min_length=1, max_length=100, description="Event tag, e.g. car_viewed")
    payload: dict[str, Any] = Field(default_factory=dict, description="Open key-value event data")
    user_id: str | None = Field(default=None, description="Subject id, anonymous when omitted")
    device_info: dict[str, Any] | None = Field(default=None, description="Opaque device descriptor")

    @field_validator("event_type", "payload", "user_id", "device_info")
    @classmethod
    def storable(cls, value: Any, info: ValidationInfo) -> Any:
        return ensure_storable(value, info.field_name)


class TrackEventBatchRequest(BaseModel):
    """Several events recorded in call order."""

    events: list[TrackEventRequest] = Field(..., min_length=1, max_length=500)


class UserPreferenceRequest(BaseModel):
    """Upsert body for one user preference."""

    preference_type: str = Field(..., min_length=1, max_length=100)
    preference_value: Any = Field(default=None, description="JSON-serializable preference value")
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator("preference_type", "preference_value")
    @classmethod
    def storable(cls, value: Any, info: ValidationInfo) -> Any:
        return ensure_storable(value, info.field_name)
