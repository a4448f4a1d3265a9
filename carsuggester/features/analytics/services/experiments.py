"""
Deterministic A/B variant assignment.

Assignment is recomputed on every call from a stable hash of the subject
id, so no assignment table is kept. Unknown or inactive experiments, and
lookup failures, always resolve to "control".
"""

from carsuggester.features.analytics.domain.models import ANONYMOUS_USER, Variant
from carsuggester.features.analytics.repository.event_repository import EventStore
from carsuggester.features.analytics.services.event_buffer import EventBuffer
from carsuggester.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193
_UINT32_MASK = 0xFFFFFFFF

CONTROL: Variant = "control"
TREATMENT: Variant = "treatment"


def stable_hash(value: str) -> int:
    """32-bit FNV-1a over the UTF-8 bytes of `value`."""
    digest = FNV_OFFSET_BASIS
    for byte in value.encode("utf-8"):
        digest ^= byte
        digest = (digest * FNV_PRIME) & _UINT32_MASK
    return digest


def assign_variant(user_id: str | None) -> Variant:
    digest = stable_hash(user_id or ANONYMOUS_USER)
    # Fold the high half in; the raw FNV-1a low bit only reflects byte parities
    bucket = (digest ^ (digest >> 16)) % 2
    return CONTROL if bucket == 0 else TREATMENT


class ExperimentService:
    def __init__(self, store: EventStore, buffer: EventBuffer):
        self.store = store
        self.buffer = buffer

    async def get_variant(self, experiment_id: str, user_id: str | None = None) -> Variant:
        try:
            experiment = await self.store.get_experiment(experiment_id)
        except Exception as e:
            logger.error(
                "Error getting experiment variant",
                experiment_id=experiment_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return CONTROL

        if experiment is None or not experiment.is_active:
            return CONTROL

        variant = assign_variant(user_id)

        self.buffer.record(
            "experiment_exposure",
            {"experiment_id": experiment_id, "variant": variant},
            user_id,
        )

        return variant
