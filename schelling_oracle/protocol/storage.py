"""
SQLite-backed persistence for requests, submissions, results and reputations.

Each call opens its own connection so the store can be shared between the
request threads and the expiry sweeper. Write-once records rely on primary
keys: an insert that hits an existing key reports ``False`` instead of
overwriting.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from schelling_oracle.schemas.aggregate_result import AggregationResult
from schelling_oracle.schemas.provider import Provider, ReputationUpdate
from schelling_oracle.schemas.request import OracleRequest, RequestStatus, StatusTransition
from schelling_oracle.schemas.submission import Commitment, Reveal

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS requests (
    request_id TEXT PRIMARY KEY,
    descriptor TEXT NOT NULL,
    min_providers INTEGER NOT NULL,
    created_at REAL NOT NULL,
    commit_deadline REAL NOT NULL,
    reveal_deadline REAL NOT NULL,
    status TEXT NOT NULL,
    failure_reason TEXT,
    callback_url TEXT
);

CREATE TABLE IF NOT EXISTS status_transitions (
    transition_id INTEGER PRIMARY KEY AUTOINCREMENT,
    request_id TEXT NOT NULL,
    from_status TEXT,
    to_status TEXT NOT NULL,
    reason TEXT,
    at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_transitions_request
    ON status_transitions(request_id);

CREATE TABLE IF NOT EXISTS commitments (
    request_id TEXT NOT NULL,
    provider_id TEXT NOT NULL,
    commitment_hash TEXT NOT NULL,
    committed_at REAL NOT NULL,
    PRIMARY KEY (request_id, provider_id)
);

CREATE TABLE IF NOT EXISTS reveals (
    request_id TEXT NOT NULL,
    provider_id TEXT NOT NULL,
    value REAL NOT NULL,
    nonce TEXT NOT NULL,
    revealed_at REAL NOT NULL,
    PRIMARY KEY (request_id, provider_id),
    FOREIGN KEY (request_id, provider_id)
        REFERENCES commitments(request_id, provider_id)
);

CREATE TABLE IF NOT EXISTS results (
    request_id TEXT PRIMARY KEY,
    consensus_value REAL NOT NULL,
    scores TEXT NOT NULL,
    aggregated_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS reputations (
    provider_id TEXT PRIMARY KEY,
    reputation REAL NOT NULL,
    submission_count INTEGER NOT NULL DEFAULT 0,
    updated_at REAL
);

CREATE TABLE IF NOT EXISTS reputation_updates (
    provider_id TEXT NOT NULL,
    request_id TEXT NOT NULL,
    validity_score REAL NOT NULL,
    previous REAL NOT NULL,
    updated REAL NOT NULL,
    at REAL NOT NULL,
    PRIMARY KEY (provider_id, request_id)
);
"""

_TERMINAL = (RequestStatus.SETTLED.value, RequestStatus.FAILED.value)


class OracleStorage:
    """Durable mappings keyed by request and provider identifiers."""

    def __init__(self, db_path: str):
        if db_path == ":memory:":
            raise ValueError("OracleStorage needs a file path; each call opens a new connection")
        self.db_path = db_path
        self._init_db()

    def _init_db(self):
        with self._conn() as conn:
            conn.executescript(SCHEMA)
        logger.debug("Opened oracle database at %s", self.db_path)

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # -- requests ---------------------------------------------------------

    def insert_request(self, request: OracleRequest, transition: StatusTransition) -> None:
        """Persist a new request together with the first entry of its status log."""
        with self._conn() as conn:
            conn.execute(
                """INSERT INTO requests
                   (request_id, descriptor, min_providers, created_at,
                    commit_deadline, reveal_deadline, status, failure_reason, callback_url)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    request.request_id,
                    request.descriptor,
                    request.min_providers,
                    request.created_at,
                    request.commit_deadline,
                    request.reveal_deadline,
                    request.status.value,
                    request.failure_reason,
                    request.callback_url,
                ),
            )
            self._insert_transition(conn, transition)

    def get_request(self, request_id: str) -> Optional[OracleRequest]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM requests WHERE request_id = ?", (request_id,)
            ).fetchone()
        return OracleRequest(**dict(row)) if row else None

    def update_request_status(
        self, transition: StatusTransition, failure_reason: Optional[str] = None
    ) -> None:
        """Persist a status change together with its audit log entry."""
        with self._conn() as conn:
            conn.execute(
                "UPDATE requests SET status = ?, failure_reason = ? WHERE request_id = ?",
                (transition.to_status.value, failure_reason, transition.request_id),
            )
            self._insert_transition(conn, transition)

    @staticmethod
    def _insert_transition(conn: sqlite3.Connection, transition: StatusTransition) -> None:
        conn.execute(
            """INSERT INTO status_transitions
               (request_id, from_status, to_status, reason, at)
               VALUES (?, ?, ?, ?, ?)""",
            (
                transition.request_id,
                transition.from_status.value if transition.from_status else None,
                transition.to_status.value,
                transition.reason,
                transition.at,
            ),
        )

    def list_transitions(self, request_id: str) -> list[StatusTransition]:
        with self._conn() as conn:
            rows = conn.execute(
                """SELECT request_id, from_status, to_status, reason, at
                   FROM status_transitions WHERE request_id = ?
                   ORDER BY transition_id""",
                (request_id,),
            ).fetchall()
        return [StatusTransition(**dict(r)) for r in rows]

    def list_pending_request_ids(self) -> list[str]:
        """Identifiers of requests not yet Settled or Failed."""
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT request_id FROM requests WHERE status NOT IN (?, ?) ORDER BY created_at",
                _TERMINAL,
            ).fetchall()
        return [r["request_id"] for r in rows]

    # -- submissions ------------------------------------------------------

    def insert_commitment(self, commitment: Commitment) -> bool:
        """Record a commitment; ``False`` if the provider already committed."""
        with self._conn() as conn:
            cursor = conn.execute(
                """INSERT OR IGNORE INTO commitments
                   (request_id, provider_id, commitment_hash, committed_at)
                   VALUES (?, ?, ?, ?)""",
                (
                    commitment.request_id,
                    commitment.provider_id,
                    commitment.commitment_hash,
                    commitment.committed_at,
                ),
            )
            return cursor.rowcount == 1

    def get_commitment(self, request_id: str, provider_id: str) -> Optional[Commitment]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM commitments WHERE request_id = ? AND provider_id = ?",
                (request_id, provider_id),
            ).fetchone()
        return Commitment(**dict(row)) if row else None

    def count_commitments(self, request_id: str) -> int:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM commitments WHERE request_id = ?", (request_id,)
            ).fetchone()
        return row[0]

    def insert_reveal(self, reveal: Reveal) -> bool:
        """Record a reveal; ``False`` if the provider already revealed."""
        with self._conn() as conn:
            cursor = conn.execute(
                """INSERT OR IGNORE INTO reveals
                   (request_id, provider_id, value, nonce, revealed_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    reveal.request_id,
                    reveal.provider_id,
                    reveal.value,
                    reveal.nonce,
                    reveal.revealed_at,
                ),
            )
            return cursor.rowcount == 1

    def get_reveal(self, request_id: str, provider_id: str) -> Optional[Reveal]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM reveals WHERE request_id = ? AND provider_id = ?",
                (request_id, provider_id),
            ).fetchone()
        return Reveal(**dict(row)) if row else None

    def list_reveals(self, request_id: str) -> list[Reveal]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM reveals WHERE request_id = ? ORDER BY revealed_at, provider_id",
                (request_id,),
            ).fetchall()
        return [Reveal(**dict(r)) for r in rows]

    # -- results ----------------------------------------------------------

    def insert_result(self, result: AggregationResult) -> bool:
        """Write a result once; ``False`` if one already exists for the request."""
        with self._conn() as conn:
            cursor = conn.execute(
                """INSERT OR IGNORE INTO results
                   (request_id, consensus_value, scores, aggregated_at)
                   VALUES (?, ?, ?, ?)""",
                (
                    result.request_id,
                    result.consensus_value,
                    json.dumps(result.scores, sort_keys=True),
                    result.aggregated_at,
                ),
            )
            return cursor.rowcount == 1

    def get_result(self, request_id: str) -> Optional[AggregationResult]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM results WHERE request_id = ?", (request_id,)
            ).fetchone()
        return self._result_from_row(row) if row else None

    def list_results(self) -> list[AggregationResult]:
        with self._conn() as conn:
            rows = conn.execute("SELECT * FROM results ORDER BY aggregated_at").fetchall()
        return [self._result_from_row(r) for r in rows]

    @staticmethod
    def _result_from_row(row: sqlite3.Row) -> AggregationResult:
        return AggregationResult(
            request_id=row["request_id"],
            consensus_value=row["consensus_value"],
            scores=json.loads(row["scores"]),
            aggregated_at=row["aggregated_at"],
        )

    # -- reputations ------------------------------------------------------

    def get_provider(self, provider_id: str) -> Optional[Provider]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM reputations WHERE provider_id = ?", (provider_id,)
            ).fetchone()
        return Provider(**dict(row)) if row else None

    def apply_reputation_update(self, update: ReputationUpdate) -> bool:
        """
        Record a round's update and the new reputation in one transaction.

        Returns ``False`` without touching the reputation if this provider
        already has an update for the request.
        """
        with self._conn() as conn:
            cursor = conn.execute(
                """INSERT OR IGNORE INTO reputation_updates
                   (provider_id, request_id, validity_score, previous, updated, at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    update.provider_id,
                    update.request_id,
                    update.validity_score,
                    update.previous,
                    update.updated,
                    update.at,
                ),
            )
            if cursor.rowcount == 0:
                return False
            conn.execute(
                """INSERT INTO reputations (provider_id, reputation, submission_count, updated_at)
                   VALUES (?, ?, 1, ?)
                   ON CONFLICT(provider_id) DO UPDATE SET
                       reputation = excluded.reputation,
                       submission_count = reputations.submission_count + 1,
                       updated_at = excluded.updated_at""",
                (update.provider_id, update.updated, update.at),
            )
            return True

    def has_reputation_update(self, provider_id: str, request_id: str) -> bool:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT 1 FROM reputation_updates WHERE provider_id = ? AND request_id = ?",
                (provider_id, request_id),
            ).fetchone()
        return row is not None

    def list_reputation_updates(self, provider_id: str, limit: int = 50) -> list[ReputationUpdate]:
        with self._conn() as conn:
            rows = conn.execute(
                """SELECT * FROM reputation_updates WHERE provider_id = ?
                   ORDER BY at DESC, rowid DESC LIMIT ?""",
                (provider_id, limit),
            ).fetchall()
        return [ReputationUpdate(**dict(r)) for r in rows]
