"""
Shared fixtures: a temporary database and a manually advanced clock.
"""

import pytest

from schelling_oracle.notifiers.base import Notifier
from schelling_oracle.protocol.service import OracleService
from schelling_oracle.protocol.storage import OracleStorage
from schelling_oracle.schemas.aggregate_result import SettlementNotification


class FakeClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingNotifier(Notifier):
    """Notifier that keeps every notification it is given."""

    name = "recording"

    def __init__(self):
        self.sent: list[tuple[str, SettlementNotification]] = []

    def notify(self, callback_url: str, notification: SettlementNotification) -> bool:
        self.sent.append((callback_url, notification))
        return True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "oracle.db")


@pytest.fixture
def storage(db_path):
    return OracleStorage(db_path)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(storage, clock, notifier):
    return OracleService(storage, notifier=notifier, clock=clock)
