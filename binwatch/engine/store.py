from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from binwatch.models.schemas import Bin

LOGGER = logging.getLogger(__name__)

UpdateListener = Callable[[Bin | None, Bin], None]

REQUIRED_METADATA = ("name", "address", "latitude", "longitude", "capacity")


class BinNotFound(LookupError):
    def __init__(self, code: str) -> None:
        super().__init__(f"Bin not found: {code}")
        self.code = code


class UnknownBinMetadata(ValueError):
    def __init__(self, code: str, missing: list[str]) -> None:
        super().__init__(f"First snapshot for {code} is missing {', '.join(missing)}")
        self.code = code
        self.missing = missing


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class BinStore:
    """Authoritative in-memory bin state.

    Writes to one code are serialized by a per-code lock, writes to different codes
    run in parallel. Listeners are called with ``(previous, current)`` while the lock
    is still held, so they observe updates for a bin one at a time and in order.
    """

    def __init__(self) -> None:
        self._records: dict[str, Bin] = {}
        self._bin_locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._listeners: list[UpdateListener] = []
        self._silenced: set[str] = set()

    def add_listener(self, listener: UpdateListener) -> None:
        self._listeners.append(listener)

    def _lock_for(self, code: str) -> threading.Lock:
        with self._registry_lock:
            return self._bin_locks.setdefault(code, threading.Lock())

    def _current(self, code: str) -> Bin | None:
        with self._registry_lock:
            return self._records.get(code)

    def _commit(self, previous: Bin | None, current: Bin) -> None:
        with self._registry_lock:
            self._records[current.code] = current
        for listener in self._listeners:
            listener(previous, current)

    def apply_snapshot(self, code: str, fields: Mapping[str, Any]) -> Bin:
        """Insert or update one bin and return the record now stored.

        A snapshot older than the stored record only contributes its deposit
        increment, and only when it falls on the same day as the stored record.
        """
        if self._current(code) is None:
            missing = [key for key in REQUIRED_METADATA if fields.get(key) is None]
            if missing:
                raise UnknownBinMetadata(code, missing)

        with self._lock_for(code):
            previous = self._current(code)
            timestamp = as_utc(fields["timestamp"])

            if previous is None:
                current = self._build_new(code, fields, timestamp)
                LOGGER.info("Registered bin %s (%s)", code, current.name)
            elif timestamp < previous.last_update:
                LOGGER.warning(
                    "Stale snapshot for %s (%s older than %s), keeping deposits only",
                    code,
                    timestamp.isoformat(),
                    previous.last_update.isoformat(),
                )
                increment = max(int(fields.get("deposit_increment") or 0), 0)
                if increment == 0 or timestamp.date() != previous.last_update.date():
                    return previous
                current = previous.model_copy(
                    update={"deposits_today": previous.deposits_today + increment}
                )
            else:
                current = self._build_update(previous, fields, timestamp)

            self._commit(previous, current)
            return current

    def _build_new(self, code: str, fields: Mapping[str, Any], timestamp: datetime) -> Bin:
        missing = [key for key in REQUIRED_METADATA if fields.get(key) is None]
        if missing:
            raise UnknownBinMetadata(code, missing)

        capacity = float(fields["capacity"])
        battery = fields.get("battery")
        online = fields.get("online")
        return Bin(
            code=code,
            name=str(fields["name"]),
            address=str(fields["address"]),
            latitude=float(fields["latitude"]),
            longitude=float(fields["longitude"]),
            current_weight=clamp(float(fields.get("weight") or 0.0), 0.0, capacity),
            capacity=capacity,
            battery_level=int(clamp(int(battery), 0, 100)) if battery is not None else 100,
            online=bool(online) if online is not None else True,
            last_update=timestamp,
            deposits_today=max(int(fields.get("deposit_increment") or 0), 0),
        )

    def _build_update(self, previous: Bin, fields: Mapping[str, Any], timestamp: datetime) -> Bin:
        weight = previous.current_weight
        if fields.get("weight") is not None:
            weight = clamp(float(fields["weight"]), 0.0, previous.capacity)

        battery = previous.battery_level
        if fields.get("battery") is not None:
            battery = int(clamp(int(fields["battery"]), 0, 100))

        online = previous.online
        if fields.get("online") is not None:
            online = bool(fields["online"])
        elif previous.code in self._silenced:
            # went offline through silence only, reporting again brings it back
            online = True
        self._silenced.discard(previous.code)

        deposits = previous.deposits_today
        if timestamp.date() > previous.last_update.date():
            deposits = 0
        deposits += max(int(fields.get("deposit_increment") or 0), 0)

        return previous.model_copy(
            update={
                "current_weight": weight,
                "battery_level": battery,
                "online": online,
                "last_update": timestamp,
                "deposits_today": deposits,
            }
        )

    def check_liveness(
        self,
        code: str,
        now: datetime,
        liveness_seconds: float,
        *,
        on_silent: Callable[[Bin], None] | None = None,
    ) -> Bin:
        """Mark a bin offline when it has been silent longer than ``liveness_seconds``.

        The timestamp is read under the same lock as ``apply_snapshot``, so an update
        that lands first is never overwritten. Bins that were already offline are
        handed to ``on_silent`` instead of being rewritten.
        """
        if self._current(code) is None:
            raise BinNotFound(code)

        with self._lock_for(code):
            record = self.get(code)

            silence = (as_utc(now) - record.last_update).total_seconds()
            if silence <= liveness_seconds:
                return record

            if record.online:
                LOGGER.info("Bin %s silent for %.0fs, marking offline", code, silence)
                self._silenced.add(code)
                current = record.model_copy(update={"online": False})
                self._commit(record, current)
                return current

            if on_silent is not None:
                on_silent(record)
            return record

    def get(self, code: str) -> Bin:
        record = self._current(code)
        if record is None:
            raise BinNotFound(code)
        return record

    def list_bins(self) -> tuple[Bin, ...]:
        with self._registry_lock:
            return tuple(self._records.values())

    def codes(self) -> list[str]:
        with self._registry_lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._records)
