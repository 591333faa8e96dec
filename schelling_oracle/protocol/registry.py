"""
Request registry.

Creates data requests, answers status queries and applies status transitions.
Transitions are validated against the request state machine and appended to
the persistent audit log.
"""

import logging
import time
import uuid
from typing import Callable, Optional

from schelling_oracle.errors import InvalidRequest, UnknownRequest
from schelling_oracle.protocol.storage import OracleStorage
from schelling_oracle.schemas.request import OracleRequest, RequestStatus, StatusTransition

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.OPEN: frozenset({RequestStatus.COMMITTING, RequestStatus.FAILED}),
    RequestStatus.COMMITTING: frozenset({RequestStatus.REVEALING, RequestStatus.FAILED}),
    RequestStatus.REVEALING: frozenset({RequestStatus.SETTLED, RequestStatus.FAILED}),
    RequestStatus.SETTLED: frozenset(),
    RequestStatus.FAILED: frozenset(),
}


class RequestRegistry:
    """Tracks outstanding data requests and their lifecycle."""

    def __init__(
        self,
        storage: OracleStorage,
        clock: Callable[[], float] = time.time,
        max_window_seconds: float = 24 * 60 * 60,
    ):
        self.storage = storage
        self.clock = clock
        self.max_window_seconds = max_window_seconds

    def create_request(
        self,
        descriptor: str,
        min_providers: int,
        commit_window: float,
        reveal_window: float,
        callback_url: Optional[str] = None,
    ) -> str:
        """
        Open a new request and return its identifier.

        Args:
            descriptor: Opaque query descriptor
            min_providers: Reveals required for the round to produce a value
            commit_window: Seconds during which commitments are accepted
            reveal_window: Seconds after the commit window during which reveals are accepted
            callback_url: Optional endpoint notified when the request ends

        Returns:
            The new request identifier
        """
        if min_providers < 1:
            raise InvalidRequest("min_providers must be at least 1")
        for name, window in (("commit_window", commit_window), ("reveal_window", reveal_window)):
            if window <= 0:
                raise InvalidRequest(f"{name} must be positive")
            if window > self.max_window_seconds:
                raise InvalidRequest(
                    f"{name} must not exceed {self.max_window_seconds:g} seconds"
                )

        now = self.clock()
        request = OracleRequest(
            request_id=uuid.uuid4().hex,
            descriptor=descriptor,
            min_providers=min_providers,
            created_at=now,
            commit_deadline=now + commit_window,
            reveal_deadline=now + commit_window + reveal_window,
            callback_url=callback_url,
        )
        self.storage.insert_request(
            request,
            StatusTransition(request_id=request.request_id, to_status=RequestStatus.OPEN, at=now),
        )
        logger.info(
            f"Request {request.request_id} opened: min_providers={min_providers} "
            f"commit_deadline={request.commit_deadline:.3f} "
            f"reveal_deadline={request.reveal_deadline:.3f}"
        )
        return request.request_id

    def get(self, request_id: str) -> OracleRequest:
        request = self.storage.get_request(request_id)
        if request is None:
            raise UnknownRequest(f"No request with id {request_id!r}")
        return request

    def get_status(self, request_id: str) -> RequestStatus:
        return self.get(request_id).status

    def transition(
        self,
        request: OracleRequest,
        to_status: RequestStatus,
        reason: Optional[str] = None,
    ) -> OracleRequest:
        """
        Move a request to a new status and log the change.

        Raises:
            ValueError: If the state machine does not allow the transition
        """
        if to_status not in ALLOWED_TRANSITIONS[request.status]:
            raise ValueError(
                f"Illegal transition {request.status.value} -> {to_status.value} "
                f"for request {request.request_id}"
            )
        failure_reason = reason if to_status is RequestStatus.FAILED else None
        self.storage.update_request_status(
            StatusTransition(
                request_id=request.request_id,
                from_status=request.status,
                to_status=to_status,
                reason=reason,
                at=self.clock(),
            ),
            failure_reason=failure_reason,
        )
        logger.info(
            f"Request {request.request_id}: {request.status.value} -> {to_status.value}"
            + (f" ({reason})" if reason else "")
        )
        return request.model_copy(update={"status": to_status, "failure_reason": failure_reason})

    def expire(self, request: OracleRequest, reason: str) -> OracleRequest:
        """
        Fail a request whose round can no longer complete.

        A terminal request is returned unchanged, so expiry racing a
        settlement is a no-op.
        """
        if request.status.is_terminal:
            return request
        return self.transition(request, RequestStatus.FAILED, reason=reason)

    def transitions(self, request_id: str) -> list[StatusTransition]:
        self.get(request_id)
        return self.storage.list_transitions(request_id)

    def pending_ids(self) -> list[str]:
        return self.storage.list_pending_request_ids()
