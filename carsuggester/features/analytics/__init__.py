"""
Engagement analytics feature package.

Keeps every layer of the analytics flow co-located (domain models,
repository, services, API router) so the event buffer, profile builder
and experiment assignment can be navigated in one place.
"""

from .api.router import router as analytics_router  # noqa: F401
from .context import AnalyticsContext, build_analytics_context, get_analytics  # noqa: F401
from .domain.models import Event, FlushResult, PersonalizationProfile  # noqa: F401
