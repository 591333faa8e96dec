"""
Commit/reveal submission models.
"""

from pydantic import BaseModel, ConfigDict, Field


class Commitment(BaseModel):
    """A provider's hash of (value, nonce). Immutable once recorded."""

    model_config = ConfigDict(frozen=True)

    request_id: str
    provider_id: str
    commitment_hash: str = Field(..., description="Hex SHA-256 of the canonical value and nonce")
    committed_at: float


class Reveal(BaseModel):
    """The opened commitment: the value and the nonce that hides it."""

    model_config = ConfigDict(frozen=True)

    request_id: str
    provider_id: str
    value: float
    nonce: str
    revealed_at: float


class CommitBody(BaseModel):
    """Request model for the POST /requests/{id}/commit endpoint."""

    provider_id: str = Field(..., min_length=1, description="Opaque provider identifier")
    hash: str = Field(..., description="Hex SHA-256 commitment")


class RevealBody(BaseModel):
    """Request model for the POST /requests/{id}/reveal endpoint."""

    provider_id: str = Field(..., min_length=1, description="Opaque provider identifier")
    value: float = Field(..., allow_inf_nan=False, description="Revealed numeric value")
    nonce: str = Field(..., description="Nonce used when committing")


class SubmissionReceipt(BaseModel):
    """Response model acknowledging an accepted commitment or reveal."""

    request_id: str
    provider_id: str
    phase: str = Field(..., description="'commit' or 'reveal'")
    accepted_at: float
