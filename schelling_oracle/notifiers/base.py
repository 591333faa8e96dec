"""
Base notifier interface.

Defines the interface used to tell requesters that their request ended.
"""

from abc import ABC, abstractmethod

from schelling_oracle.schemas.aggregate_result import SettlementNotification


class Notifier(ABC):
    """Abstract base class for requester notification channels."""

    name: str

    @abstractmethod
    def notify(self, callback_url: str, notification: SettlementNotification) -> bool:
        """
        Deliver a notification to a requester's callback.

        Implementations MUST NOT throw; return False if delivery failed.

        Args:
            callback_url: Endpoint registered with the request
            notification: Final status of the request

        Returns:
            True if the requester acknowledged the notification
        """
        ...
