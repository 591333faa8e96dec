"""
Request-related Pydantic models for the Schelling oracle API.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RequestStatus(str, Enum):
    """Lifecycle of a data request."""

    OPEN = "Open"
    COMMITTING = "Committing"
    REVEALING = "Revealing"
    SETTLED = "Settled"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.SETTLED, RequestStatus.FAILED)


class OracleRequest(BaseModel):
    """Model representing a data request and its round deadlines."""

    request_id: str = Field(..., description="Unique request identifier")
    descriptor: str = Field(..., description="Opaque query descriptor supplied by the requester")
    min_providers: int = Field(..., ge=1, description="Reveals required for a valid round")
    created_at: float = Field(..., description="Unix timestamp of creation")
    commit_deadline: float = Field(..., description="Commitments are accepted before this time")
    reveal_deadline: float = Field(..., description="Reveals are accepted before this time")
    status: RequestStatus = RequestStatus.OPEN
    failure_reason: Optional[str] = Field(None, description="Error code when status is Failed")
    callback_url: Optional[str] = Field(None, description="Requester notification endpoint")


class StatusTransition(BaseModel):
    """One entry of a request's append-only status log."""

    request_id: str
    from_status: Optional[RequestStatus] = None
    to_status: RequestStatus
    reason: Optional[str] = None
    at: float


class CreateRequestBody(BaseModel):
    """Request model for the POST /requests endpoint."""

    descriptor: str = Field(..., description="Opaque query descriptor")
    min_providers: int = Field(..., ge=1, description="Minimum number of reveals")
    commit_window_seconds: float = Field(..., gt=0, description="Length of the commit phase")
    reveal_window_seconds: float = Field(..., gt=0, description="Length of the reveal phase")
    callback_url: Optional[str] = Field(None, description="URL notified on settlement or failure")


class RequestView(BaseModel):
    """Response model describing a request's current state."""

    request_id: str
    descriptor: str
    status: RequestStatus
    failure_reason: Optional[str] = None
    min_providers: int
    commit_deadline: float
    reveal_deadline: float
    commit_count: int = 0
    reveal_count: int = 0
    consensus_value: Optional[float] = Field(
        None, description="Consensus value, present once the request is Settled"
    )
    settled_at: Optional[float] = None
