"""
Null notifier implementation.

Drops every notification. Used when callbacks are disabled.
"""

import logging

from schelling_oracle.notifiers.base import Notifier
from schelling_oracle.schemas.aggregate_result import SettlementNotification

logger = logging.getLogger(__name__)


class NullNotifier(Notifier):
    """Notifier that delivers nothing."""

    name = "null"

    def notify(self, callback_url: str, notification: SettlementNotification) -> bool:
        logger.debug(
            f"Dropping notification for {notification.request_id} to {callback_url}"
        )
        return False
