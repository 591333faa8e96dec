"""
Round coordinator.

Wires the registry, collector, aggregator, reputation store and settlement
dispatcher together. Every operation on a request runs under that request's
lock after advancing the request to the current time, so phase changes,
submissions and the round close never interleave. Aggregation therefore runs
once and no reveal is accepted after it starts. A request's lock is dropped
once the request is Settled or Failed.

Requester notifications are queued during the round and delivered later by
``deliver_notifications``, never on the thread that closed the round.
"""

import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from schelling_oracle.config import Settings
from schelling_oracle.errors import (
    InsufficientReveals,
    NoValidReveals,
    OracleError,
    RequestFailed,
    RoundStillOpen,
)
from schelling_oracle.notifiers.base import Notifier
from schelling_oracle.notifiers.http_callback import HttpCallbackNotifier
from schelling_oracle.protocol.aggregator import ConsensusAggregator
from schelling_oracle.protocol.collector import SubmissionCollector
from schelling_oracle.protocol.registry import RequestRegistry
from schelling_oracle.protocol.reputation import (
    DEFAULT_ALPHA,
    NEUTRAL_REPUTATION,
    ReputationStore,
)
from schelling_oracle.protocol.settlement import SettlementDispatcher
from schelling_oracle.protocol.storage import OracleStorage
from schelling_oracle.schemas.aggregate_result import AggregationResult
from schelling_oracle.schemas.provider import Provider, ReputationUpdate
from schelling_oracle.schemas.request import (
    OracleRequest,
    RequestStatus,
    RequestView,
    StatusTransition,
)
from schelling_oracle.schemas.submission import Commitment, Reveal

logger = logging.getLogger(__name__)


class OracleService:
    """Runs commit/reveal rounds from request creation to settlement."""

    def __init__(
        self,
        storage: OracleStorage,
        *,
        aggregator: Optional[ConsensusAggregator] = None,
        notifier: Optional[Notifier] = None,
        alpha: float = DEFAULT_ALPHA,
        neutral_reputation: float = NEUTRAL_REPUTATION,
        max_window_seconds: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.clock = clock
        self.registry = RequestRegistry(storage, clock=clock, max_window_seconds=max_window_seconds)
        self.collector = SubmissionCollector(storage, self.registry, clock=clock)
        self.aggregator = aggregator or ConsensusAggregator(clock=clock)
        self.reputation = ReputationStore(
            storage, alpha=alpha, neutral=neutral_reputation, clock=clock
        )
        self.settlement = SettlementDispatcher(storage, self.registry, notifier, clock=clock)

        self._request_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._reputation_retries: list[tuple[str, str, float]] = []
        self._retry_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls, settings: Settings, notifier: Optional[Notifier] = None
    ) -> "OracleService":
        """Build a service with storage, aggregation and callbacks configured from settings."""
        return cls(
            OracleStorage(settings.ORACLE_DB_PATH),
            aggregator=ConsensusAggregator(settings.ORACLE_DEVIATION_THRESHOLD),
            notifier=notifier
            or HttpCallbackNotifier(
                timeout=settings.ORACLE_CALLBACK_TIMEOUT_SECONDS,
                max_retries=settings.ORACLE_CALLBACK_MAX_RETRIES,
            ),
            alpha=settings.ORACLE_REPUTATION_ALPHA,
            neutral_reputation=settings.ORACLE_NEUTRAL_REPUTATION,
            max_window_seconds=settings.ORACLE_MAX_WINDOW_SECONDS,
        )

    # -- locking ----------------------------------------------------------

    def _lock_for(self, request_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._request_locks.setdefault(request_id, threading.Lock())

    def _release_lock(self, request_id: str) -> None:
        with self._locks_guard:
            self._request_locks.pop(request_id, None)

    @contextmanager
    def _round(self, request_id: str) -> Iterator[OracleRequest]:
        """Hold a request's lock and yield it advanced to the current time."""
        self.registry.get(request_id)
        with self._lock_for(request_id):
            try:
                yield self._advance(self.registry.get(request_id))
            finally:
                # Settled and Failed requests never change again
                if self.registry.get_status(request_id).is_terminal:
                    self._release_lock(request_id)

    # -- phase advancement ------------------------------------------------

    def _advance(self, request: OracleRequest) -> OracleRequest:
        if request.status.is_terminal:
            return request

        now = self.clock()
        if (
            request.status in (RequestStatus.OPEN, RequestStatus.COMMITTING)
            and now >= request.commit_deadline
        ):
            committed = self.collector.commitment_count(request.request_id)
            if committed < request.min_providers:
                logger.info(
                    f"Request {request.request_id} closed commits with {committed} of "
                    f"{request.min_providers} providers"
                )
                return self.settlement.fail(request, InsufficientReveals.code)
            request = self.registry.transition(request, RequestStatus.REVEALING)

        if request.status is RequestStatus.REVEALING and self._round_complete(request, now):
            request = self._close_round(request)
        return request

    def _round_complete(self, request: OracleRequest, now: float) -> bool:
        if now >= request.reveal_deadline:
            return True
        return len(self.storage.list_reveals(request.request_id)) >= request.min_providers

    def _close_round(self, request: OracleRequest) -> OracleRequest:
        result = self.storage.get_result(request.request_id)
        if result is None:
            try:
                result = self.aggregator.aggregate(
                    request.request_id,
                    self.collector.revealed_values(request.request_id),
                    request.min_providers,
                )
            except (InsufficientReveals, NoValidReveals) as exc:
                logger.info(f"Request {request.request_id} failed aggregation: {exc.detail}")
                return self.settlement.fail(request, exc.code)
            result = self.settlement.record(result)

        self._apply_reputation(result)
        self.settlement.settle(request.request_id)
        return self.registry.get(request.request_id)

    # -- reputation -------------------------------------------------------

    def _apply_reputation(self, result: AggregationResult) -> None:
        for provider_id, score in result.scores.items():
            self._update_or_queue(provider_id, result.request_id, score)

    def _update_or_queue(self, provider_id: str, request_id: str, score: float) -> bool:
        try:
            self.reputation.update_reputation(provider_id, score, request_id)
            return True
        except sqlite3.Error as exc:
            logger.warning(
                f"Reputation write for {provider_id} on {request_id} failed, will retry: {exc}"
            )
            with self._retry_lock:
                self._reputation_retries.append((provider_id, request_id, score))
            return False

    def retry_reputation_updates(self) -> int:
        """Retry queued reputation writes; returns how many succeeded."""
        with self._retry_lock:
            pending, self._reputation_retries = self._reputation_retries, []
        return sum(
            1 for provider_id, request_id, score in pending
            if self._update_or_queue(provider_id, request_id, score)
        )

    def reconcile(self) -> int:
        """
        Replay every stored result into the reputation store.

        Rounds already applied are skipped, so this is safe at every startup
        and repairs updates lost to a crash between aggregation and reputation.
        """
        replayed = 0
        for result in self.storage.list_results():
            for provider_id, score in result.scores.items():
                if not self.storage.has_reputation_update(provider_id, result.request_id):
                    if self._update_or_queue(provider_id, result.request_id, score):
                        replayed += 1
        if replayed:
            logger.info(f"Reconciled {replayed} reputation updates")
        return replayed

    # -- requests ---------------------------------------------------------

    def create_request(
        self,
        descriptor: str,
        min_providers: int,
        commit_window: float,
        reveal_window: float,
        callback_url: Optional[str] = None,
    ) -> OracleRequest:
        request_id = self.registry.create_request(
            descriptor, min_providers, commit_window, reveal_window, callback_url
        )
        return self.registry.get(request_id)

    def get_request(self, request_id: str) -> OracleRequest:
        with self._round(request_id) as request:
            return request

    def get_status(self, request_id: str) -> RequestStatus:
        return self.get_request(request_id).status

    def describe(self, request_id: str) -> RequestView:
        """Current state of a request, including the consensus value once Settled."""
        with self._round(request_id) as request:
            result = (
                self.storage.get_result(request_id)
                if request.status is RequestStatus.SETTLED
                else None
            )
            return RequestView(
                request_id=request.request_id,
                descriptor=request.descriptor,
                status=request.status,
                failure_reason=request.failure_reason,
                min_providers=request.min_providers,
                commit_deadline=request.commit_deadline,
                reveal_deadline=request.reveal_deadline,
                commit_count=self.collector.commitment_count(request_id),
                reveal_count=len(self.storage.list_reveals(request_id)),
                consensus_value=result.consensus_value if result else None,
                settled_at=result.aggregated_at if result else None,
            )

    def transitions(self, request_id: str) -> list[StatusTransition]:
        return self.registry.transitions(request_id)

    def expire(self, request_id: str) -> RequestStatus:
        """Apply any due deadline to a request; a no-op for settled or failed requests."""
        with self._round(request_id) as request:
            return request.status

    # -- submissions ------------------------------------------------------

    def commit(self, request_id: str, provider_id: str, commitment_hash: str) -> Commitment:
        with self._round(request_id) as request:
            _, commitment = self.collector.commit(request, provider_id, commitment_hash)
            return commitment

    def reveal(self, request_id: str, provider_id: str, value: float, nonce: str) -> Reveal:
        with self._round(request_id) as request:
            reveal = self.collector.reveal(request, provider_id, value, nonce)
            if self._round_complete(request, self.clock()):
                self._close_round(request)
            return reveal

    # -- settlement -------------------------------------------------------

    def settle(self, request_id: str) -> AggregationResult:
        """
        Return the settled result of a request, closing the round if it is due.

        Raises:
            RequestFailed: The request ended in Failed
            RoundStillOpen: The round has not closed yet
        """
        with self._round(request_id):
            return self.settlement.settle(request_id)

    def get_result(self, request_id: str) -> AggregationResult:
        """Read the stored result without changing any state."""
        with self._round(request_id) as request:
            if request.status is RequestStatus.FAILED:
                raise RequestFailed(request.failure_reason or "unknown")
            result = self.storage.get_result(request_id)
            if result is None:
                raise RoundStillOpen(f"Request {request_id} has not been aggregated")
            return result

    # -- providers --------------------------------------------------------

    def get_provider(self, provider_id: str) -> Provider:
        return self.reputation.get_provider(provider_id)

    def get_reputation(self, provider_id: str) -> float:
        return self.reputation.get_reputation(provider_id)

    def provider_history(self, provider_id: str, limit: int = 50) -> list[ReputationUpdate]:
        return self.reputation.history(provider_id, limit=limit)

    # -- notifications ----------------------------------------------------

    def deliver_notifications(self) -> int:
        """Send queued requester notifications; returns how many were acknowledged."""
        return self.settlement.flush()

    # -- periodic work ----------------------------------------------------

    def sweep(self) -> int:
        """
        Expire every pending request whose deadline passed, deliver queued
        notifications and retry queued reputation writes.

        Returns:
            Number of requests that reached a terminal status
        """
        closed = 0
        for request_id in self.registry.pending_ids():
            try:
                if self.expire(request_id).is_terminal:
                    closed += 1
            except OracleError as exc:
                logger.warning(f"Sweep skipped request {request_id}: {exc.detail}")
        self.deliver_notifications()
        self.retry_reputation_updates()
        return closed
