from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from binwatch.config import ThresholdConfig
from binwatch.engine.aggregates import IncrementalAggregate, compute_fleet_aggregate
from binwatch.engine.alerts import AlertEngine
from binwatch.engine.classifier import battery_band, classify, fill_band, format_since
from binwatch.engine.store import BinStore
from binwatch.models.schemas import (
    Alert,
    AlertTypeLiteral,
    Bin,
    BinView,
    FleetAggregate,
    SensorSnapshot,
)
from binwatch.sensors.gateway import IngestionGateway

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class FleetMonitor:
    """Ingestion, state, alerts and aggregates for one fleet of bins."""

    def __init__(
        self,
        thresholds: ThresholdConfig,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.thresholds = thresholds
        self._clock = clock or _utcnow
        self.store = BinStore()
        self.alerts = AlertEngine(thresholds, clock=self._clock)
        self.incremental = IncrementalAggregate(thresholds)
        self.gateway = IngestionGateway(self.store)
        self.store.add_listener(self._on_update)

    def _on_update(self, previous: Bin | None, current: Bin) -> None:
        self.alerts.reconcile(current)
        self.incremental.apply(previous, current)

    def ingest(self, snapshot: SensorSnapshot | Mapping[str, Any]) -> Bin:
        return self.gateway.ingest(snapshot)

    def ingest_many(self, snapshots: Iterable[SensorSnapshot | Mapping[str, Any]]) -> list[Bin]:
        return [self.ingest(item) for item in snapshots]

    def list_bins(self) -> tuple[Bin, ...]:
        return self.store.list_bins()

    def get_bin(self, code: str) -> Bin:
        return self.store.get(code)

    def active_alerts(self) -> tuple[Alert, ...]:
        return self.alerts.active_alerts()

    def resolve_alert(self, bin_code: str, alert_type: AlertTypeLiteral) -> bool:
        return self.alerts.resolve(bin_code, alert_type)

    def fleet_aggregate(self) -> FleetAggregate:
        return compute_fleet_aggregate(self.store.list_bins(), self.thresholds)

    def incremental_aggregate(self) -> FleetAggregate:
        return self.incremental.snapshot()

    def sweep_liveness(self) -> list[str]:
        """Take silent bins offline and re-check offline alerts. Returns offline codes."""
        now = self._clock()
        offline: list[str] = []
        for code in self.store.codes():
            record = self.store.check_liveness(
                code,
                now,
                self.thresholds.offline_liveness_seconds,
                on_silent=self.alerts.reconcile,
            )
            if not record.online:
                offline.append(code)
        if offline:
            LOGGER.debug("Liveness sweep: %d offline bins", len(offline))
        return offline

    def view(self, bin_record: Bin) -> BinView:
        silence = (self._clock() - bin_record.last_update).total_seconds()
        return BinView(
            bin=bin_record,
            status=classify(bin_record, self.thresholds),
            fill_band=fill_band(bin_record.fill_percentage, self.thresholds),
            battery_band=battery_band(bin_record.battery_level),
            since_update=format_since(silence),
            alerts_active=bool(self.alerts.alerts_for(bin_record.code)),
        )
