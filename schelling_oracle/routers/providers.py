"""
Provider API router.

Endpoints for reading provider reputations.
"""

from fastapi import APIRouter, Depends, Query

from schelling_oracle.dependencies import get_service
from schelling_oracle.protocol.service import OracleService
from schelling_oracle.schemas.provider import Provider, ReputationUpdate

router = APIRouter(prefix="/providers", tags=["providers"])


@router.get("/{provider_id}/reputation", response_model=Provider)
def get_reputation(provider_id: str, service: OracleService = Depends(get_service)) -> Provider:
    """Return the provider's reputation; unknown providers get the neutral prior."""
    return service.get_provider(provider_id)


@router.get("/{provider_id}/history", response_model=list[ReputationUpdate])
def get_history(
    provider_id: str,
    limit: int = Query(50, ge=1, le=500),
    service: OracleService = Depends(get_service),
) -> list[ReputationUpdate]:
    """Return the provider's most recent reputation updates, newest first."""
    return service.provider_history(provider_id, limit=limit)
