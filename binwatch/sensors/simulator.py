from __future__ import annotations

import random
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from binwatch.config import SeedBin
from binwatch.engine.store import clamp
from binwatch.models.schemas import SensorSnapshot


class SnapshotProducer(Protocol):
    def poll(self, now: datetime) -> list[SensorSnapshot]:
        ...


def seed_snapshots(seed_bins: Iterable[SeedBin], now: datetime) -> list[SensorSnapshot]:
    """First-sight snapshots, with identity metadata, for the configured fleet."""
    return [
        SensorSnapshot(
            code=item.code,
            timestamp=now - timedelta(seconds=item.seconds_since_update),
            name=item.name,
            address=item.address,
            latitude=item.latitude,
            longitude=item.longitude,
            capacity=item.capacity,
            weight=item.weight,
            battery=item.battery,
            online=item.online,
            deposit_increment=item.deposits_today,
        )
        for item in seed_bins
    ]


@dataclass(slots=True)
class _WalkState:
    capacity: float
    weight: float
    battery: int
    online: bool


class RandomWalkProducer:
    """Seeded sensor drift for demos and tests.

    Bins that start offline stay silent, so only the liveness sweep touches them.
    """

    def __init__(self, seed_bins: Iterable[SeedBin], *, seed: int = 0) -> None:
        self._rng = random.Random(seed)
        self._states: dict[str, _WalkState] = {
            item.code: _WalkState(
                capacity=item.capacity,
                weight=item.weight,
                battery=item.battery,
                online=item.online,
            )
            for item in seed_bins
        }

    def poll(self, now: datetime) -> list[SensorSnapshot]:
        snapshots: list[SensorSnapshot] = []
        for code, state in self._states.items():
            if not state.online:
                continue

            if state.weight >= state.capacity * 0.98 and self._rng.random() < 0.05:
                # collected
                weight = self._rng.uniform(0.02, 0.10) * state.capacity
            else:
                weight_change = (self._rng.random() - 0.3) * 2
                weight = clamp(state.weight + weight_change, 0.0, state.capacity)

            battery_change = -1 if self._rng.random() > 0.9 else 0
            battery = int(clamp(state.battery + battery_change, 0, 100))
            deposit = 1 if weight - state.weight > 0.5 else 0

            state.weight = weight
            state.battery = battery
            snapshots.append(
                SensorSnapshot(
                    code=code,
                    timestamp=now,
                    weight=round(weight, 2),
                    battery=battery,
                    online=True,
                    deposit_increment=deposit,
                )
            )
        return snapshots
