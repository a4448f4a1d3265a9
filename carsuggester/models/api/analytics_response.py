# models/api/analytics_response.py
"""
Response models for the engagement analytics endpoints.
"""

from typing import Literal

from pydantic import BaseModel, Field


class TrackEventResponse(BaseModel):
    accepted: int = Field(..., description="Number of events queued")
    pending: int = Field(..., description="Events waiting for the next sync")
    session_id: str = Field(..., description="Buffer session identifier")


class FlushResponse(BaseModel):
    status: Literal["success", "failure", "empty", "skipped"]
    ok: bool
    sent: int = 0
    requeued: int = 0
    error: str | None = None


class PriceRangeResponse(BaseModel):
    min: float
    max: float


class PersonalizationProfileResponse(BaseModel):
    """Derived behavioral summary; recomputed on every request."""

    user_id: str
    interests: list[str] = Field(default_factory=list)
    price_range: PriceRangeResponse
    preferred_brands: list[str] = Field(default_factory=list)
    preferred_features: list[str] = Field(default_factory=list)
    location: str = "Unknown"
    search_history: list[str] = Field(default_factory=list)
    view_history: list[str] = Field(default_factory=list)
    saved_cars: list[str] = Field(default_factory=list)
    behavior_score: float = 0.0
    engagement_level: Literal["low", "medium", "high"] = "low"


class RecommendationsResponse(BaseModel):
    user_id: str
    recommendations: list[str] = Field(default_factory=list)


class VariantResponse(BaseModel):
    experiment_id: str
    user_id: str
    variant: Literal["control", "treatment"]


class DataDeletionResponse(BaseModel):
    success: bool
    message: str
