from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from binwatch.api.routes import router as api_router
from binwatch.api.websocket import ConnectionManager, router as websocket_router
from binwatch.config import load_config
from binwatch.engine.monitor import FleetMonitor
from binwatch.models.schemas import Bin
from binwatch.sensors.collector import TelemetryCollector
from binwatch.sensors.simulator import RandomWalkProducer, seed_snapshots

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = load_config()
    monitor = FleetMonitor(config.thresholds)
    monitor.ingest_many(seed_snapshots(config.bins, datetime.now(tz=UTC)))

    ws_manager = ConnectionManager()

    async def publish(record: Bin):
        await ws_manager.publish_bin(monitor, record)

    producer = RandomWalkProducer(config.bins, seed=config.simulation.seed)
    collector = TelemetryCollector(monitor, producer, config.simulation, on_update=publish)
    tasks: list[asyncio.Task[Any]] = [asyncio.create_task(collector.sweep_forever())]

    if config.simulation.enabled:
        tasks.append(asyncio.create_task(collector.run_forever()))

    app.state.config = config
    app.state.monitor = monitor
    app.state.ws_manager = ws_manager
    app.state.collector = collector

    yield

    await collector.stop()
    for task in tasks:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


app = FastAPI(
    title="Smart Bin Fleet Monitoring API",
    version="1.0.0",
    description="Live status, alerts and fleet statistics for sensor-equipped waste bins",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)
app.include_router(websocket_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
