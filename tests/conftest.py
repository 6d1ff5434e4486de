from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from binwatch.config import ThresholdConfig
from binwatch.engine.monitor import FleetMonitor

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def first_sight(code: str, timestamp: datetime, **fields) -> dict:
    snapshot = {
        "code": code,
        "timestamp": timestamp,
        "name": f"Bin {code}",
        "address": "Rue des Jardins",
        "latitude": 5.36,
        "longitude": -4.0083,
        "capacity": 100.0,
        "weight": 10.0,
        "battery": 80,
        "online": True,
    }
    snapshot.update(fields)
    return snapshot


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def thresholds() -> ThresholdConfig:
    return ThresholdConfig()


@pytest.fixture
def monitor(thresholds: ThresholdConfig, clock: FakeClock) -> FleetMonitor:
    return FleetMonitor(thresholds, clock=clock)
