"""
Submission collector for the commit and reveal phases.

Callers hold the request's lock and pass the request already advanced to the
current time; the collector enforces windows and the at-most-once rules.
"""

import logging
import math
import time
from typing import Callable

from schelling_oracle.errors import (
    AlreadySettled,
    DuplicateCommitment,
    DuplicateReveal,
    InvalidCommitment,
    InvalidRequest,
    NoMatchingCommitment,
    WindowClosed,
)
from schelling_oracle.protocol.commitment import normalize_commitment, verify_commitment
from schelling_oracle.protocol.registry import RequestRegistry
from schelling_oracle.protocol.storage import OracleStorage
from schelling_oracle.schemas.request import OracleRequest, RequestStatus
from schelling_oracle.schemas.submission import Commitment, Reveal

logger = logging.getLogger(__name__)


class SubmissionCollector:
    """Accepts commitments and reveals from providers."""

    def __init__(
        self,
        storage: OracleStorage,
        registry: RequestRegistry,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.registry = registry
        self.clock = clock

    def commit(
        self, request: OracleRequest, provider_id: str, commitment_hash: str
    ) -> tuple[OracleRequest, Commitment]:
        """
        Record a provider's commitment.

        Returns:
            Tuple of (request after any status change, stored commitment)
        """
        now = self.clock()
        if request.status is RequestStatus.SETTLED:
            raise AlreadySettled(f"Request {request.request_id} is already settled")
        if (
            request.status not in (RequestStatus.OPEN, RequestStatus.COMMITTING)
            or now >= request.commit_deadline
        ):
            raise WindowClosed(f"Commit window for request {request.request_id} is closed")

        normalized = normalize_commitment(commitment_hash)
        if not normalized:
            raise InvalidCommitment("Commitment must be a 64 character hex SHA-256 digest")

        commitment = Commitment(
            request_id=request.request_id,
            provider_id=provider_id,
            commitment_hash=normalized,
            committed_at=now,
        )
        if not self.storage.insert_commitment(commitment):
            logger.info(f"Duplicate commitment from {provider_id} on {request.request_id}")
            raise DuplicateCommitment(
                f"Provider {provider_id!r} already committed to request {request.request_id}"
            )

        logger.debug(f"Commitment from {provider_id} on {request.request_id}")
        if request.status is RequestStatus.OPEN:
            request = self.registry.transition(request, RequestStatus.COMMITTING)
        return request, commitment

    def reveal(
        self, request: OracleRequest, provider_id: str, value: float, nonce: str
    ) -> Reveal:
        """Verify a reveal against the provider's commitment and record it."""
        if not math.isfinite(value):
            raise InvalidRequest(f"Revealed value must be a finite number, got {value!r}")
        now = self.clock()
        if request.status is RequestStatus.SETTLED:
            raise AlreadySettled(f"Request {request.request_id} is already settled")
        if (
            request.status is not RequestStatus.REVEALING
            or not request.commit_deadline <= now < request.reveal_deadline
        ):
            raise WindowClosed(f"Reveal window for request {request.request_id} is closed")

        commitment = self.storage.get_commitment(request.request_id, provider_id)
        if commitment is None:
            raise NoMatchingCommitment(
                f"Provider {provider_id!r} has no commitment on request {request.request_id}"
            )
        if self.storage.get_reveal(request.request_id, provider_id) is not None:
            raise DuplicateReveal(
                f"Provider {provider_id!r} already revealed on request {request.request_id}"
            )
        if not verify_commitment(commitment.commitment_hash, value, nonce):
            logger.info(f"Reveal from {provider_id} on {request.request_id} does not match")
            raise NoMatchingCommitment("Revealed value and nonce do not match the commitment")

        reveal = Reveal(
            request_id=request.request_id,
            provider_id=provider_id,
            value=float(value),
            nonce=nonce,
            revealed_at=now,
        )
        if not self.storage.insert_reveal(reveal):
            raise DuplicateReveal(
                f"Provider {provider_id!r} already revealed on request {request.request_id}"
            )
        logger.debug(f"Reveal from {provider_id} on {request.request_id}: {value}")
        return reveal

    def commitment_count(self, request_id: str) -> int:
        return self.storage.count_commitments(request_id)

    def revealed_values(self, request_id: str) -> dict[str, float]:
        """Map of provider to revealed value for a request."""
        return {r.provider_id: r.value for r in self.storage.list_reveals(request_id)}
