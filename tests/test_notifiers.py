"""
Tests for requester notification channels.
"""

import json

import httpx

from schelling_oracle.notifiers import HttpCallbackNotifier, NullNotifier
from schelling_oracle.schemas.aggregate_result import SettlementNotification
from schelling_oracle.schemas.request import RequestStatus

NOTIFICATION = SettlementNotification(
    request_id="req-1",
    status=RequestStatus.SETTLED,
    consensus_value=11.5,
    timestamp=1_000.0,
)


class TestHttpCallbackNotifier:
    """Test cases for HTTP callback delivery."""

    def test_posts_json_payload(self):
        """The notification is posted as JSON to the callback URL."""
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append((str(request.url), json.loads(request.content)))
            return httpx.Response(200)

        notifier = HttpCallbackNotifier(transport=httpx.MockTransport(handler))

        assert notifier.notify("http://requester.test/cb", NOTIFICATION) is True
        assert received == [
            (
                "http://requester.test/cb",
                {
                    "request_id": "req-1",
                    "status": "Settled",
                    "consensus_value": 11.5,
                    "failure_reason": None,
                    "timestamp": 1000.0,
                },
            )
        ]

    def test_retries_then_succeeds(self):
        """Server errors are retried."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(503 if len(attempts) < 2 else 204)

        notifier = HttpCallbackNotifier(
            max_retries=3, transport=httpx.MockTransport(handler), backoff_base=0.0
        )

        assert notifier.notify("http://requester.test/cb", NOTIFICATION) is True
        assert len(attempts) == 2

    def test_gives_up_after_max_retries(self):
        """Persistent failures return False without raising."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ConnectError("refused", request=request)

        notifier = HttpCallbackNotifier(
            max_retries=3, transport=httpx.MockTransport(handler), backoff_base=0.0
        )

        assert notifier.notify("http://requester.test/cb", NOTIFICATION) is False
        assert len(attempts) == 3

    def test_unusable_url(self):
        """A malformed callback URL is a failed delivery, not an exception."""
        notifier = HttpCallbackNotifier(max_retries=1, backoff_base=0.0)
        assert notifier.notify("not a url", NOTIFICATION) is False


class TestNullNotifier:
    """Test cases for the no-op notifier."""

    def test_drops_everything(self):
        assert NullNotifier().notify("http://requester.test/cb", NOTIFICATION) is False
