"""
Notifiers

Channels that tell requesters their request was settled or failed.
"""

from schelling_oracle.notifiers.base import Notifier
from schelling_oracle.notifiers.http_callback import HttpCallbackNotifier
from schelling_oracle.notifiers.null_notifier import NullNotifier

__all__ = ["Notifier", "HttpCallbackNotifier", "NullNotifier"]
