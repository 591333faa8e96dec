"""
Aggregation result schemas.

Defines the write-once consensus record of a round and the notification sent
to requesters when a round ends.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from schelling_oracle.schemas.request import RequestStatus


class AggregationResult(BaseModel):
    """Model representing the consensus value and per-provider validity scores."""

    model_config = ConfigDict(frozen=True)

    request_id: str = Field(..., description="Request the round belongs to")
    consensus_value: float = Field(..., description="Median of all revealed values")
    scores: dict[str, float] = Field(
        default_factory=dict, description="Validity score in [0, 1] per provider"
    )
    aggregated_at: float = Field(..., description="Unix timestamp of aggregation")

    @property
    def valid_providers(self) -> list[str]:
        """Providers whose score is above zero."""
        return [provider for provider, score in self.scores.items() if score > 0.0]


class SettlementNotification(BaseModel):
    """Payload delivered to a requester's callback when its request ends."""

    request_id: str
    status: RequestStatus
    consensus_value: Optional[float] = None
    failure_reason: Optional[str] = None
    timestamp: float
