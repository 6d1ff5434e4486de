from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from binwatch.config import SimulationConfig
from binwatch.engine.monitor import FleetMonitor
from binwatch.engine.store import UnknownBinMetadata
from binwatch.models.schemas import Bin
from binwatch.sensors.gateway import InvalidSnapshot
from binwatch.sensors.simulator import SnapshotProducer

LOGGER = logging.getLogger(__name__)


class TelemetryCollector:
    def __init__(
        self,
        monitor: FleetMonitor,
        producer: SnapshotProducer,
        settings: SimulationConfig,
        *,
        on_update: Callable[[Bin], asyncio.Future[None] | None] | None = None,
    ) -> None:
        self.monitor = monitor
        self.producer = producer
        self.settings = settings
        self.on_update = on_update
        self._running = False

    async def collect_once(self) -> list[Bin]:
        results: list[Bin] = []
        for snapshot in self.producer.poll(datetime.now(tz=UTC)):
            try:
                record = self.monitor.ingest(snapshot)
            except (UnknownBinMetadata, InvalidSnapshot) as exc:
                LOGGER.warning("Rejected snapshot for %s: %s", snapshot.code, exc)
                continue
            results.append(record)

            if self.on_update is not None:
                maybe_awaitable = self.on_update(record)
                if asyncio.iscoroutine(maybe_awaitable):
                    await maybe_awaitable
        return results

    async def run_forever(self) -> None:
        self._running = True
        LOGGER.info("Telemetry collector started with %d bins", len(self.monitor.store))

        while self._running:
            await self.collect_once()
            await asyncio.sleep(self.settings.interval_seconds)

    async def sweep_forever(self) -> None:
        self._running = True
        while self._running:
            await asyncio.sleep(self.settings.sweep_interval_seconds)
            await asyncio.to_thread(self.monitor.sweep_liveness)

    async def stop(self) -> None:
        self._running = False
