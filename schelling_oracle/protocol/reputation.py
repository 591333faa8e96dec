"""
Provider reputation store.

Reputation is an exponentially weighted moving average of per-round validity
scores: ``new = alpha * score + (1 - alpha) * old``. Providers are addressed
only by identifier. Updates run under a lock chosen by hashing the provider
identifier into a fixed pool, so rounds settling in parallel never lose an
update to the same provider and the lock table does not grow with providers.
"""

import logging
import threading
import time
from typing import Callable

from schelling_oracle.protocol.storage import OracleStorage
from schelling_oracle.schemas.provider import Provider, ReputationUpdate

logger = logging.getLogger(__name__)

DEFAULT_ALPHA = 0.2
NEUTRAL_REPUTATION = 0.5
LOCK_STRIPES = 64


class ReputationStore:
    """Persists provider trust scores across rounds."""

    def __init__(
        self,
        storage: OracleStorage,
        alpha: float = DEFAULT_ALPHA,
        neutral: float = NEUTRAL_REPUTATION,
        clock: Callable[[], float] = time.time,
    ):
        if not 0.0 < alpha <= 1.0:
            raise ValueError("alpha must be in (0, 1]")
        if not 0.0 <= neutral <= 1.0:
            raise ValueError("neutral reputation must be in [0, 1]")
        self.storage = storage
        self.alpha = alpha
        self.neutral = neutral
        self.clock = clock
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _lock_for(self, provider_id: str) -> threading.Lock:
        return self._locks[hash(provider_id) % len(self._locks)]

    def get_provider(self, provider_id: str) -> Provider:
        """Return the provider record, or a neutral prior for unknown providers."""
        provider = self.storage.get_provider(provider_id)
        if provider is None:
            return Provider(provider_id=provider_id, reputation=self.neutral)
        return provider

    def get_reputation(self, provider_id: str) -> float:
        return self.get_provider(provider_id).reputation

    def update_reputation(
        self, provider_id: str, validity_score: float, request_id: str
    ) -> Provider:
        """
        Fold one round's validity score into a provider's reputation.

        Applying the same request twice is a no-op that returns the current
        record.

        Args:
            provider_id: Provider to update
            validity_score: Score in [0, 1] from the round's aggregation
            request_id: Round the score belongs to

        Returns:
            The provider record after the update
        """
        score = min(1.0, max(0.0, validity_score))
        with self._lock_for(provider_id):
            previous = self.get_reputation(provider_id)
            updated = self.alpha * score + (1.0 - self.alpha) * previous
            applied = self.storage.apply_reputation_update(
                ReputationUpdate(
                    provider_id=provider_id,
                    request_id=request_id,
                    validity_score=score,
                    previous=previous,
                    updated=updated,
                    at=self.clock(),
                )
            )
            if applied:
                logger.debug(
                    f"Reputation of {provider_id}: {previous:.4f} -> {updated:.4f} "
                    f"(score {score:.4f}, request {request_id})"
                )
            else:
                logger.debug(f"Reputation of {provider_id} already updated for {request_id}")
            return self.get_provider(provider_id)

    def history(self, provider_id: str, limit: int = 50) -> list[ReputationUpdate]:
        return self.storage.list_reputation_updates(provider_id, limit=limit)
