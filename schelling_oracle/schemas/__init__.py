"""
Schemas module for the Schelling oracle API

Contains Pydantic models for request/response validation and stored records.
"""

from schelling_oracle.schemas.aggregate_result import AggregationResult, SettlementNotification
from schelling_oracle.schemas.provider import Provider, ReputationUpdate
from schelling_oracle.schemas.request import (
    CreateRequestBody,
    OracleRequest,
    RequestStatus,
    RequestView,
    StatusTransition,
)
from schelling_oracle.schemas.submission import (
    CommitBody,
    Commitment,
    Reveal,
    RevealBody,
    SubmissionReceipt,
)

__all__ = [
    "AggregationResult",
    "SettlementNotification",
    "Provider",
    "ReputationUpdate",
    "CreateRequestBody",
    "OracleRequest",
    "RequestStatus",
    "RequestView",
    "StatusTransition",
    "CommitBody",
    "Commitment",
    "Reveal",
    "RevealBody",
    "SubmissionReceipt",
]
