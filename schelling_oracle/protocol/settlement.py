"""
Settlement dispatcher.

Finalizes rounds: stores the write-once aggregation result, marks the request
Settled or Failed, and queues a notification for the requester. Queued
notifications are delivered by ``flush`` so callers can send them after
releasing the request lock.
"""

import logging
import threading
import time
from typing import Callable, Optional

from schelling_oracle.errors import RequestFailed, RoundStillOpen
from schelling_oracle.notifiers.base import Notifier
from schelling_oracle.notifiers.null_notifier import NullNotifier
from schelling_oracle.protocol.registry import RequestRegistry
from schelling_oracle.protocol.storage import OracleStorage
from schelling_oracle.schemas.aggregate_result import AggregationResult, SettlementNotification
from schelling_oracle.schemas.request import OracleRequest, RequestStatus

logger = logging.getLogger(__name__)


class SettlementDispatcher:
    """Finalizes results and notifies requesters."""

    def __init__(
        self,
        storage: OracleStorage,
        registry: RequestRegistry,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.registry = registry
        self.notifier = notifier or NullNotifier()
        self.clock = clock
        self._outbox: list[tuple[str, SettlementNotification]] = []
        self._outbox_lock = threading.Lock()

    def record(self, result: AggregationResult) -> AggregationResult:
        """Store a result once and return whichever result is stored."""
        if not self.storage.insert_result(result):
            logger.warning(f"Result for {result.request_id} already stored; keeping the first")
            return self.storage.get_result(result.request_id)
        return result

    def settle(self, request_id: str) -> AggregationResult:
        """
        Mark a request Settled and notify its requester.

        Settling an already settled request returns the cached result without
        recomputing or notifying again.

        Raises:
            RequestFailed: The request ended in Failed
            RoundStillOpen: No result has been recorded for the request yet
        """
        request = self.registry.get(request_id)
        if request.status is RequestStatus.FAILED:
            raise RequestFailed(request.failure_reason or "unknown")

        result = self.storage.get_result(request_id)
        if result is None:
            raise RoundStillOpen(f"Request {request_id} has not been aggregated")
        if request.status is RequestStatus.SETTLED:
            return result

        request = self.registry.transition(request, RequestStatus.SETTLED)
        logger.info(f"Request {request_id} settled at {result.consensus_value}")
        self._enqueue(
            request,
            SettlementNotification(
                request_id=request_id,
                status=RequestStatus.SETTLED,
                consensus_value=result.consensus_value,
                timestamp=result.aggregated_at,
            ),
        )
        return result

    def fail(self, request: OracleRequest, reason: str) -> OracleRequest:
        """Mark a request Failed with a reason code and notify its requester."""
        if request.status.is_terminal:
            return request
        request = self.registry.expire(request, reason)
        self._enqueue(
            request,
            SettlementNotification(
                request_id=request.request_id,
                status=RequestStatus.FAILED,
                failure_reason=reason,
                timestamp=self.clock(),
            ),
        )
        return request

    def _enqueue(self, request: OracleRequest, notification: SettlementNotification) -> None:
        if not request.callback_url:
            return
        with self._outbox_lock:
            self._outbox.append((request.callback_url, notification))

    def flush(self) -> int:
        """Deliver queued notifications; returns how many were acknowledged."""
        with self._outbox_lock:
            pending, self._outbox = self._outbox, []
        delivered = 0
        for callback_url, notification in pending:
            if self.notifier.notify(callback_url, notification):
                delivered += 1
        return delivered
