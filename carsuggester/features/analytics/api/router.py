"""
Engagement analytics routes.

Event ingestion and variant lookup accept anonymous callers. Profile,
preference and data-management endpoints act on the signed-in user only;
flush, status and realtime metrics also require a signed-in caller.
"""

from fastapi import APIRouter, Depends, Query, status

from carsuggester.auth.verify import (
    auth_dependency,
    optional_auth_dependency,
    subject_from_claims,
)
from carsuggester.features.analytics.context import AnalyticsContext, get_analytics
from carsuggester.features.analytics.domain.models import ANONYMOUS_USER
from carsuggester.infrastructure.observability.logging import get_logger
from carsuggester.models.api.analytics_request import (
    TrackEventBatchRequest,
    TrackEventRequest,
    UserPreferenceRequest,
)
from carsuggester.models.api.analytics_response import (
    DataDeletionResponse,
    FlushResponse,
    PersonalizationProfileResponse,
    RecommendationsResponse,
    TrackEventResponse,
    VariantResponse,
)

router = APIRouter(prefix="/analytics", tags=["analytics"])
logger = get_logger(__name__)


def _resolve_subject(claims: dict | None, requested: str | None) -> str | None:
    """A verified token always wins over a user id supplied in the body."""
    if claims and claims.get("sub"):
        return claims["sub"]
    return requested


@router.post("/events", status_code=status.HTTP_202_ACCEPTED, response_model=TrackEventResponse)
async def track_event(
    body: TrackEventRequest,
    claims: dict | None = Depends(optional_auth_dependency),
    analytics: AnalyticsContext = Depends(get_analytics),
):
    event = analytics.buffer.record(
        body.event_type,
        body.payload,
        _resolve_subject(claims, body.user_id),
        device_info=body.device_info,
    )
    return TrackEventResponse(
        accepted=1 if event else 0,
        pending=analytics.buffer.pending,
        session_id=analytics.buffer.session_id,
    )


@router.post(
    "/events/batch", status_code=status.HTTP_202_ACCEPTED, response_model=TrackEventResponse
)
async def track_event_batch(
    body: TrackEventBatchRequest,
    claims: dict | None = Depends(optional_auth_dependency),
    analytics: AnalyticsContext = Depends(get_analytics),
):
    accepted = 0
    for item in body.events:
        event = analytics.buffer.record(
            item.event_type,
            item.payload,
            _resolve_subject(claims, item.user_id),
            device_info=item.device_info,
        )
        if event:
            accepted += 1

    return TrackEventResponse(
        accepted=accepted,
        pending=analytics.buffer.pending,
        session_id=analytics.buffer.session_id,
    )


@router.post("/flush", response_model=FlushResponse, dependencies=[Depends(auth_dependency)])
async def flush_events(analytics: AnalyticsContext = Depends(get_analytics)):
    """Force an immediate sync of queued events."""
    result = await analytics.buffer.flush()
    return FlushResponse(**result.to_dict())


@router.get("/status", dependencies=[Depends(auth_dependency)])
async def buffer_status(analytics: AnalyticsContext = Depends(get_analytics)) -> dict:
    return analytics.buffer.status()


@router.get("/profile", response_model=PersonalizationProfileResponse)
async def get_profile(
    include_pending: bool = Query(default=False, description="Merge events not yet synced"),
    claims: dict = Depends(auth_dependency),
    analytics: AnalyticsContext = Depends(get_analytics),
):
    user_id = subject_from_claims(claims)
    profile = await analytics.profiles.build_profile(user_id, include_pending=include_pending)
    return PersonalizationProfileResponse(**profile.to_dict())


@router.get("/recommendations", response_model=RecommendationsResponse)
async def get_recommendations(
    claims: dict = Depends(auth_dependency),
    analytics: AnalyticsContext = Depends(get_analytics),
):
    user_id = subject_from_claims(claims)
    recommendations = await analytics.profiles.recommend(user_id)
    return RecommendationsResponse(user_id=user_id, recommendations=recommendations)


@router.get("/experiments/{experiment_id}/variant", response_model=VariantResponse)
async def get_experiment_variant(
    experiment_id: str,
    claims: dict | None = Depends(optional_auth_dependency),
    analytics: AnalyticsContext = Depends(get_analytics),
):
    user_id = _resolve_subject(claims, None)
    variant = await analytics.experiments.get_variant(experiment_id, user_id)
    return VariantResponse(
        experiment_id=experiment_id,
        user_id=user_id or ANONYMOUS_USER,
        variant=variant,
    )


@router.get("/metrics/realtime", dependencies=[Depends(auth_dependency)])
async def get_realtime_metrics(
    window_minutes: int | None = Query(default=None, ge=1, le=24 * 60),
    analytics: AnalyticsContext = Depends(get_analytics),
) -> dict:
    return await analytics.metrics.get_realtime_metrics(window_minutes)


@router.put("/preferences")
async def update_preferences(
    body: UserPreferenceRequest,
    claims: dict = Depends(auth_dependency),
    analytics: AnalyticsContext = Depends(get_analytics),
) -> dict:
    user_id = subject_from_claims(claims)
    updated = await analytics.privacy.update_user_preferences(user_id, body.model_dump())
    return {"updated": updated, "preference_type": body.preference_type}


@router.get("/export")
async def export_my_data(
    claims: dict = Depends(auth_dependency),
    analytics: AnalyticsContext = Depends(get_analytics),
) -> dict:
    user_id = subject_from_claims(claims)
    return await analytics.privacy.export_user_data(user_id)


@router.delete("/data", response_model=DataDeletionResponse)
async def delete_my_data(
    claims: dict = Depends(auth_dependency),
    analytics: AnalyticsContext = Depends(get_analytics),
):
    user_id = subject_from_claims(claims)
    deleted = await analytics.privacy.delete_user_data(user_id)

    logger.info("Analytics data deletion requested", user_id=user_id, success=deleted)

    return DataDeletionResponse(
        success=deleted,
        message="Analytics events deleted" if deleted else "Deletion failed, please retry later",
    )
