"""
Domain subpackage for the engagement analytics feature.
"""

from .models import (
    ANONYMOUS_USER,
    Event,
    Experiment,
    FlushResult,
    PersonalizationProfile,
    PriceRange,
)

__all__ = [
    "ANONYMOUS_USER",
    "Event",
    "Experiment",
    "FlushResult",
    "PersonalizationProfile",
    "PriceRange",
]
