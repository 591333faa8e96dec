"""
Provider reputation models.
"""

from typing import Optional

from pydantic import BaseModel, Field


class Provider(BaseModel):
    """Model representing a provider's long-lived trust record."""

    provider_id: str
    reputation: float = Field(..., ge=0.0, le=1.0, description="Smoothed reliability score")
    submission_count: int = Field(0, ge=0, description="Rounds folded into the reputation")
    updated_at: Optional[float] = None


class ReputationUpdate(BaseModel):
    """One per-round reputation change, kept as history."""

    provider_id: str
    request_id: str
    validity_score: float = Field(..., ge=0.0, le=1.0)
    previous: float
    updated: float
    at: float
