from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime

from binwatch.config import ThresholdConfig
from binwatch.engine.classifier import format_since, is_full, is_low_battery
from binwatch.models.schemas import Alert, AlertPriorityLiteral, AlertTypeLiteral, Bin

LOGGER = logging.getLogger(__name__)

AlertKey = tuple[str, AlertTypeLiteral]

ALERT_TYPES: tuple[AlertTypeLiteral, ...] = ("full", "low_battery", "offline")
_PRIORITY_RANK: dict[str, int] = {"high": 0, "medium": 1}


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class AlertEngine:
    """Owns the set of active alerts, at most one per (bin code, alert type).

    ``reconcile`` and ``resolve`` for the same bin share one lock, so a manual
    acknowledgement can never race a reconcile into a duplicate alert.
    An acknowledged alert stays down until its condition has cleared once.
    """

    def __init__(
        self,
        thresholds: ThresholdConfig,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.thresholds = thresholds
        self._clock = clock or _utcnow
        self._active: dict[AlertKey, Alert] = {}
        self._acknowledged: set[AlertKey] = set()
        self._bin_locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, code: str) -> threading.Lock:
        with self._registry_lock:
            return self._bin_locks.setdefault(code, threading.Lock())

    def _priority(self, alert_type: AlertTypeLiteral) -> AlertPriorityLiteral:
        if alert_type == "full":
            return self.thresholds.full_priority
        if alert_type == "low_battery":
            return self.thresholds.low_battery_priority
        return self.thresholds.offline_priority

    def _evaluate(self, bin_record: Bin, now: datetime) -> dict[AlertTypeLiteral, str | None]:
        """Map every alert type to its message when triggered, or None."""
        silence = (now - bin_record.last_update).total_seconds()
        offline = not bin_record.online and silence > self.thresholds.offline_liveness_seconds

        return {
            "full": (
                f"{bin_record.code}: bin full ({bin_record.fill_percentage:.1f}%) - collection needed"
                if is_full(bin_record, self.thresholds)
                else None
            ),
            "low_battery": (
                f"{bin_record.code}: battery low ({bin_record.battery_level}%)"
                if is_low_battery(bin_record, self.thresholds)
                else None
            ),
            "offline": (
                f"{bin_record.code}: offline for {format_since(silence)}" if offline else None
            ),
        }

    def reconcile(self, bin_record: Bin) -> list[Alert]:
        """Bring the alerts of one bin in line with its current attributes.

        Returns the alerts raised by this call.
        """
        raised: list[Alert] = []
        with self._lock_for(bin_record.code):
            now = self._clock()
            for alert_type, message in self._evaluate(bin_record, now).items():
                key: AlertKey = (bin_record.code, alert_type)
                with self._registry_lock:
                    existing = self._active.get(key)

                    if message is None:
                        self._acknowledged.discard(key)
                        if existing is not None:
                            del self._active[key]
                            LOGGER.info("Resolved %s alert for %s", alert_type, bin_record.code)
                        continue

                    if existing is not None:
                        self._active[key] = existing.model_copy(update={"last_seen": now})
                        continue

                    if key in self._acknowledged:
                        continue

                    alert = Alert(
                        bin_code=bin_record.code,
                        alert_type=alert_type,
                        message=message,
                        priority=self._priority(alert_type),
                        created_at=now,
                        last_seen=now,
                    )
                    self._active[key] = alert
                raised.append(alert)
                LOGGER.info("Raised %s alert: %s", alert.priority, alert.message)
        return raised

    def resolve(self, bin_code: str, alert_type: AlertTypeLiteral) -> bool:
        """Acknowledge an alert. Returns False when nothing was active."""
        key: AlertKey = (bin_code, alert_type)
        with self._registry_lock:
            if key not in self._active:
                return False

        with self._lock_for(bin_code):
            with self._registry_lock:
                if key not in self._active:
                    return False
                del self._active[key]
                self._acknowledged.add(key)
        LOGGER.info("Acknowledged %s alert for %s", alert_type, bin_code)
        return True

    def active_alerts(self) -> tuple[Alert, ...]:
        with self._registry_lock:
            alerts = list(self._active.values())
        alerts.sort(
            key=lambda item: (
                _PRIORITY_RANK[item.priority],
                item.created_at,
                item.bin_code,
                ALERT_TYPES.index(item.alert_type),
            )
        )
        return tuple(alerts)

    def alerts_for(self, bin_code: str) -> tuple[Alert, ...]:
        return tuple(item for item in self.active_alerts() if item.bin_code == bin_code)
