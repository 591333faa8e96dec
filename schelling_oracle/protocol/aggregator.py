"""
Consensus aggregation for revealed values.

Aggregation Rules:
1. Fewer reveals than the request's min_providers: the round fails (InsufficientReveals)
2. Consensus = median of all revealed values; an even count averages the two middle values
3. Each provider scores 1 - deviation / threshold, floored at 0
4. Every provider at 0: the round fails (NoValidReveals)

Outliers are excluded by scoring only, never before the median is taken.
"""

import logging
import time
from statistics import median
from typing import Callable

from schelling_oracle.errors import InsufficientReveals, NoValidReveals
from schelling_oracle.schemas.aggregate_result import AggregationResult

logger = logging.getLogger(__name__)

DEFAULT_DEVIATION_THRESHOLD = 0.25


def relative_deviation(value: float, consensus: float) -> float:
    """Deviation of a value from the consensus, relative to the consensus magnitude."""
    if consensus == 0:
        return abs(value)
    return abs(value - consensus) / abs(consensus)


class ConsensusAggregator:
    """Computes the Schelling-point consensus and per-provider validity scores."""

    def __init__(
        self,
        deviation_threshold: float = DEFAULT_DEVIATION_THRESHOLD,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            deviation_threshold: Relative deviation at and beyond which a
                provider scores 0
            clock: Source of the aggregation timestamp
        """
        if deviation_threshold <= 0:
            raise ValueError("deviation_threshold must be positive")
        self.deviation_threshold = deviation_threshold
        self.clock = clock

    def score(self, value: float, consensus: float) -> float:
        """Validity score in [0, 1], falling linearly to 0 at the threshold."""
        deviation = relative_deviation(value, consensus)
        if deviation >= self.deviation_threshold:
            return 0.0
        return min(1.0, max(0.0, 1.0 - deviation / self.deviation_threshold))

    def aggregate(
        self,
        request_id: str,
        reveals: dict[str, float],
        min_providers: int,
    ) -> AggregationResult:
        """
        Aggregate the revealed values of one request.

        Args:
            request_id: Request the reveals belong to
            reveals: Mapping of provider identifier to revealed value
            min_providers: Reveals required for a valid round

        Returns:
            AggregationResult with consensus value and validity scores

        Raises:
            InsufficientReveals: Fewer than min_providers reveals
            NoValidReveals: No provider is within the deviation threshold
        """
        if not reveals or len(reveals) < min_providers:
            raise InsufficientReveals(
                f"Request {request_id} has {len(reveals)} reveals, needs {min_providers}"
            )

        consensus = float(median(reveals.values()))
        scores = {
            provider: self.score(value, consensus) for provider, value in sorted(reveals.items())
        }
        logger.debug(f"Request {request_id} consensus={consensus} scores={scores}")

        result = AggregationResult(
            request_id=request_id,
            consensus_value=consensus,
            scores=scores,
            aggregated_at=self.clock(),
        )
        if not result.valid_providers:
            raise NoValidReveals(
                f"No reveal on request {request_id} is within "
                f"{self.deviation_threshold:.0%} of the consensus {consensus}"
            )
        return result
