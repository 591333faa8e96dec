"""
Tests for the HTTP API.
"""

import pytest
from fastapi.testclient import TestClient

from schelling_oracle.config import Settings
from schelling_oracle.main import create_app
from schelling_oracle.protocol.commitment import compute_commitment


@pytest.fixture
def client(service):
    settings = Settings(ORACLE_SWEEP_INTERVAL_SECONDS=3600.0)
    with TestClient(create_app(service=service, settings=settings)) as test_client:
        yield test_client


def create(client, min_providers=2, commit_window=10.0, reveal_window=10.0):
    response = client.post(
        "/requests",
        json={
            "descriptor": "ETH/USD",
            "min_providers": min_providers,
            "commit_window_seconds": commit_window,
            "reveal_window_seconds": reveal_window,
        },
    )
    assert response.status_code == 201
    return response.json()["request_id"]


def commit(client, request_id, provider_id, value, nonce):
    return client.post(
        f"/requests/{request_id}/commit",
        json={"provider_id": provider_id, "hash": compute_commitment(value, nonce)},
    )


def reveal(client, request_id, provider_id, value, nonce):
    return client.post(
        f"/requests/{request_id}/reveal",
        json={"provider_id": provider_id, "value": value, "nonce": nonce},
    )


class TestRequestsAPI:
    """Test cases for /requests endpoints."""

    def test_create_request(self, client, clock):
        """Creating a request returns its id and Open status."""
        response = client.post(
            "/requests",
            json={
                "descriptor": "ETH/USD",
                "min_providers": 3,
                "commit_window_seconds": 30,
                "reveal_window_seconds": 60,
            },
        )
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "Open"
        assert data["min_providers"] == 3
        assert data["commit_deadline"] == clock.now + 30
        assert data["reveal_deadline"] == clock.now + 90
        assert data["consensus_value"] is None
        assert len(data["request_id"]) == 32

    def test_full_round(self, client, clock):
        """Commit, reveal and read back the consensus value."""
        request_id = create(client)
        assert commit(client, request_id, "p1", 100.0, "n1").status_code == 202
        assert commit(client, request_id, "p2", 102.0, "n2").status_code == 202
        assert client.get(f"/requests/{request_id}").json()["status"] == "Committing"

        clock.advance(10)
        assert reveal(client, request_id, "p1", 100.0, "n1").status_code == 202
        response = reveal(client, request_id, "p2", 102.0, "n2")
        assert response.status_code == 202
        assert response.json()["phase"] == "reveal"

        data = client.get(f"/requests/{request_id}").json()
        assert data["status"] == "Settled"
        assert data["consensus_value"] == 101.0
        assert data["commit_count"] == 2
        assert data["reveal_count"] == 2

        result = client.get(f"/requests/{request_id}/result").json()
        assert result["consensus_value"] == 101.0
        assert set(result["scores"]) == {"p1", "p2"}

        transitions = client.get(f"/requests/{request_id}/transitions").json()
        assert [t["to_status"] for t in transitions] == [
            "Open",
            "Committing",
            "Revealing",
            "Settled",
        ]

    def test_unknown_request(self, client):
        """Unknown ids return 404 with the error code."""
        response = client.get("/requests/does-not-exist")
        assert response.status_code == 404
        assert response.json()["error"] == "UnknownRequest"

    def test_duplicate_commitment(self, client):
        """A second commitment returns 409."""
        request_id = create(client)
        commit(client, request_id, "p1", 1.0, "n")
        response = commit(client, request_id, "p1", 2.0, "m")
        assert response.status_code == 409
        assert response.json()["error"] == "DuplicateCommitment"

    def test_mismatched_reveal(self, client, clock):
        """A reveal that does not open the commitment returns 422."""
        request_id = create(client)
        commit(client, request_id, "p1", 1.0, "n")
        commit(client, request_id, "p2", 1.0, "m")
        clock.advance(10)

        response = reveal(client, request_id, "p1", 1.0, "wrong")
        assert response.status_code == 422
        assert response.json()["error"] == "NoMatchingCommitment"

    def test_window_closed(self, client):
        """Reveals during the commit phase return 409 WindowClosed."""
        request_id = create(client)
        commit(client, request_id, "p1", 1.0, "n")
        response = reveal(client, request_id, "p1", 1.0, "n")
        assert response.status_code == 409
        assert response.json()["error"] == "WindowClosed"

    def test_failed_request(self, client, clock):
        """Insufficient reveals surface as Failed with a reason."""
        request_id = create(client, min_providers=2)
        commit(client, request_id, "p1", 1.0, "n")
        commit(client, request_id, "p2", 1.0, "m")
        clock.advance(10)
        reveal(client, request_id, "p1", 1.0, "n")
        clock.advance(10)

        data = client.get(f"/requests/{request_id}").json()
        assert data["status"] == "Failed"
        assert data["failure_reason"] == "InsufficientReveals"

        response = client.get(f"/requests/{request_id}/result")
        assert response.status_code == 409
        assert response.json()["error"] == "RequestFailed"

    def test_result_before_close(self, client):
        """Results are unavailable while the round is open."""
        request_id = create(client)
        response = client.get(f"/requests/{request_id}/result")
        assert response.status_code == 409
        assert response.json()["error"] == "RoundStillOpen"

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"descriptor": "q", "min_providers": 0, "commit_window_seconds": 1, "reveal_window_seconds": 1},
            {"descriptor": "q", "min_providers": 1, "commit_window_seconds": 0, "reveal_window_seconds": 1},
        ],
    )
    def test_invalid_create_body(self, client, body):
        """Malformed bodies are validation errors."""
        assert client.post("/requests", json=body).status_code == 422

    def test_window_above_maximum(self, client):
        """Windows longer than the configured maximum are rejected."""
        response = client.post(
            "/requests",
            json={
                "descriptor": "q",
                "min_providers": 1,
                "commit_window_seconds": 10_000_000,
                "reveal_window_seconds": 1,
            },
        )
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidRequest"

    def test_invalid_hash(self, client):
        """Malformed commitment hashes return 400."""
        request_id = create(client)
        response = client.post(
            f"/requests/{request_id}/commit", json={"provider_id": "p1", "hash": "xyz"}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidCommitment"


class TestProvidersAPI:
    """Test cases for /providers endpoints."""

    def test_unknown_provider_is_neutral(self, client):
        """Providers without history report the neutral prior."""
        response = client.get("/providers/nobody/reputation")
        assert response.status_code == 200
        data = response.json()
        assert data["reputation"] == 0.5
        assert data["submission_count"] == 0

    def test_reveal_after_round_closed(self, client, clock):
        """Once min_providers have revealed, a late reveal returns 409."""
        request_id = create(client, min_providers=2)
        for provider_id in ("p1", "p2", "p3"):
            commit(client, request_id, provider_id, 7.0, f"n-{provider_id}")
        clock.advance(10)
        reveal(client, request_id, "p1", 7.0, "n-p1")
        reveal(client, request_id, "p2", 7.0, "n-p2")

        response = reveal(client, request_id, "p3", 7.0, "n-p3")
        assert response.status_code == 409
        assert response.json()["error"] == "AlreadySettled"

    def test_reputation_after_round(self, client, clock):
        """A perfect round moves reputation from 0.5 to 0.6."""
        request_id = create(client)
        commit(client, request_id, "p1", 5.0, "n1")
        commit(client, request_id, "p2", 5.0, "n2")
        clock.advance(10)
        reveal(client, request_id, "p1", 5.0, "n1")
        reveal(client, request_id, "p2", 5.0, "n2")

        data = client.get("/providers/p1/reputation").json()
        assert data["reputation"] == pytest.approx(0.6)
        assert data["submission_count"] == 1

        history = client.get("/providers/p1/history").json()
        assert len(history) == 1
        assert history[0]["request_id"] == request_id
        assert history[0]["validity_score"] == 1.0


class TestHealth:
    """Test cases for service endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
