"""
HTTP callback notifier.

POSTs the settlement notification as JSON to the requester's callback URL,
retrying with bounded exponential backoff.
"""

import logging
import time
from typing import Optional

import httpx

from schelling_oracle.notifiers.base import Notifier
from schelling_oracle.schemas.aggregate_result import SettlementNotification

logger = logging.getLogger(__name__)

BACKOFF_BASE = 0.5
BACKOFF_MAX = 5.0


class HttpCallbackNotifier(Notifier):
    """Delivers notifications to requester callbacks over HTTP."""

    name = "http_callback"

    def __init__(
        self,
        timeout: float = 5.0,
        max_retries: int = 3,
        transport: Optional[httpx.BaseTransport] = None,
        backoff_base: float = BACKOFF_BASE,
    ):
        """
        Args:
            timeout: Per-attempt timeout in seconds
            max_retries: Attempts before giving up
            transport: Optional httpx transport (tests inject a MockTransport)
            backoff_base: Delay before the second attempt; doubles per attempt
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.timeout = timeout
        self.max_retries = max_retries
        self.transport = transport
        self.backoff_base = backoff_base

    def notify(self, callback_url: str, notification: SettlementNotification) -> bool:
        payload = notification.model_dump(mode="json")
        with httpx.Client(transport=self.transport, timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    response = client.post(callback_url, json=payload)
                    if response.is_success:
                        logger.info(
                            f"Notified {callback_url} for request {notification.request_id}"
                        )
                        return True
                    logger.warning(
                        f"Callback {callback_url} answered {response.status_code} "
                        f"{response.reason_phrase} (attempt {attempt + 1}/{self.max_retries})"
                    )
                except (httpx.HTTPError, httpx.InvalidURL) as exc:
                    logger.warning(
                        f"Callback {callback_url} failed: {exc} "
                        f"(attempt {attempt + 1}/{self.max_retries})"
                    )
                if attempt + 1 < self.max_retries:
                    time.sleep(min(self.backoff_base * 2**attempt, BACKOFF_MAX))

        logger.error(
            f"Giving up on callback {callback_url} for request {notification.request_id}"
        )
        return False
