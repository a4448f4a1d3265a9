"""
Service layer for the engagement analytics feature.
"""

from .event_buffer import EventBuffer
from .experiments import ExperimentService
from .privacy_service import PrivacyService
from .profile_builder import ProfileService
from .realtime_metrics import RealtimeMetricsService

__all__ = [
    "EventBuffer",
    "ExperimentService",
    "PrivacyService",
    "ProfileService",
    "RealtimeMetricsService",
]
