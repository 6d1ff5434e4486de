from __future__ import annotations

import math
import threading
from collections.abc import Iterable
from fractions import Fraction

from binwatch.config import ThresholdConfig
from binwatch.engine.classifier import is_full, is_low_battery
from binwatch.models.schemas import Bin, FleetAggregate


def compute_fleet_aggregate(bins: Iterable[Bin], thresholds: ThresholdConfig) -> FleetAggregate:
    total = online = full = low_battery = deposits = 0
    weights: list[float] = []
    for item in bins:
        total += 1
        online += int(item.online)
        full += int(is_full(item, thresholds))
        low_battery += int(is_low_battery(item, thresholds))
        deposits += item.deposits_today
        weights.append(item.current_weight)

    return FleetAggregate(
        total_bins=total,
        online_bins=online,
        full_bins=full,
        low_battery_bins=low_battery,
        deposits_today=deposits,
        total_weight=math.fsum(weights),
    )


class IncrementalAggregate:
    """Fleet counters kept up to date from ``(previous, current)`` store updates.

    The weight total is held as an exact rational so the result always equals
    ``compute_fleet_aggregate`` over the same records.
    """

    def __init__(self, thresholds: ThresholdConfig) -> None:
        self.thresholds = thresholds
        self._lock = threading.Lock()
        self._total = 0
        self._online = 0
        self._full = 0
        self._low_battery = 0
        self._deposits = 0
        self._weight = Fraction(0)

    def _contribution(self, item: Bin) -> tuple[int, int, int, int, Fraction]:
        return (
            int(item.online),
            int(is_full(item, self.thresholds)),
            int(is_low_battery(item, self.thresholds)),
            item.deposits_today,
            Fraction(item.current_weight),
        )

    def apply(self, previous: Bin | None, current: Bin) -> None:
        added = self._contribution(current)
        with self._lock:
            if previous is None:
                self._total += 1
            else:
                removed = self._contribution(previous)
                self._online -= removed[0]
                self._full -= removed[1]
                self._low_battery -= removed[2]
                self._deposits -= removed[3]
                self._weight -= removed[4]

            self._online += added[0]
            self._full += added[1]
            self._low_battery += added[2]
            self._deposits += added[3]
            self._weight += added[4]

    def snapshot(self) -> FleetAggregate:
        with self._lock:
            return FleetAggregate(
                total_bins=self._total,
                online_bins=self._online,
                full_bins=self._full,
                low_battery_bins=self._low_battery,
                deposits_today=self._deposits,
                total_weight=float(self._weight),
            )
