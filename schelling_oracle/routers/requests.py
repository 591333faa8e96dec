"""
Request API router.

Endpoints for opening data requests and submitting commitments and reveals.
Handlers are plain functions: the service blocks on locks and SQLite, so
FastAPI runs them in its threadpool.
"""

from fastapi import APIRouter, Depends

from schelling_oracle.dependencies import get_service
from schelling_oracle.protocol.service import OracleService
from schelling_oracle.schemas.aggregate_result import AggregationResult
from schelling_oracle.schemas.request import CreateRequestBody, RequestView, StatusTransition
from schelling_oracle.schemas.submission import CommitBody, RevealBody, SubmissionReceipt

router = APIRouter(prefix="/requests", tags=["requests"])


@router.post("", response_model=RequestView, status_code=201)
def create_request(
    body: CreateRequestBody, service: OracleService = Depends(get_service)
) -> RequestView:
    """
    Open a new data request.

    Args:
        body: Descriptor, minimum providers and window lengths

    Returns:
        RequestView of the new request, including its request_id
    """
    request = service.create_request(
        body.descriptor,
        body.min_providers,
        body.commit_window_seconds,
        body.reveal_window_seconds,
        callback_url=body.callback_url,
    )
    return service.describe(request.request_id)


@router.get("/{request_id}", response_model=RequestView)
def get_request(request_id: str, service: OracleService = Depends(get_service)) -> RequestView:
    """Return the request status and, once Settled, its consensus value."""
    return service.describe(request_id)


@router.post("/{request_id}/commit", response_model=SubmissionReceipt, status_code=202)
def commit(
    request_id: str, body: CommitBody, service: OracleService = Depends(get_service)
) -> SubmissionReceipt:
    """Record a provider's commitment hash for the request."""
    commitment = service.commit(request_id, body.provider_id, body.hash)
    return SubmissionReceipt(
        request_id=request_id,
        provider_id=commitment.provider_id,
        phase="commit",
        accepted_at=commitment.committed_at,
    )


@router.post("/{request_id}/reveal", response_model=SubmissionReceipt, status_code=202)
def reveal(
    request_id: str, body: RevealBody, service: OracleService = Depends(get_service)
) -> SubmissionReceipt:
    """Open a provider's commitment with its value and nonce."""
    accepted = service.reveal(request_id, body.provider_id, body.value, body.nonce)
    return SubmissionReceipt(
        request_id=request_id,
        provider_id=accepted.provider_id,
        phase="reveal",
        accepted_at=accepted.revealed_at,
    )


@router.get("/{request_id}/result", response_model=AggregationResult)
def get_result(
    request_id: str, service: OracleService = Depends(get_service)
) -> AggregationResult:
    """Return the aggregation result with per-provider validity scores."""
    return service.get_result(request_id)


@router.get("/{request_id}/transitions", response_model=list[StatusTransition])
def get_transitions(
    request_id: str, service: OracleService = Depends(get_service)
) -> list[StatusTransition]:
    """Return the request's status audit log, oldest first."""
    return service.transitions(request_id)
