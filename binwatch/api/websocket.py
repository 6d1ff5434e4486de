from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from binwatch.engine.monitor import FleetMonitor
from binwatch.models.schemas import Bin

LOGGER = logging.getLogger(__name__)

router = APIRouter()


def fleet_state_message(monitor: FleetMonitor) -> dict[str, Any]:
    return {
        "type": "fleet",
        "data": {
            "bins": [monitor.view(item).model_dump(mode="json") for item in monitor.list_bins()],
            "alerts": [item.model_dump(mode="json") for item in monitor.active_alerts()],
            "aggregate": monitor.fleet_aggregate().model_dump(mode="json"),
        },
    }


def bin_update_message(monitor: FleetMonitor, record: Bin) -> dict[str, Any]:
    return {
        "type": "bin",
        "data": monitor.view(record).model_dump(mode="json"),
        "alerts": [item.model_dump(mode="json") for item in monitor.alerts.alerts_for(record.code)],
    }


class ConnectionManager:
    """Dashboard clients subscribed to live bin updates."""

    def __init__(self) -> None:
        self._connections: set[WebSocket] = set()

    def __len__(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket, greeting: dict[str, Any]) -> None:
        await websocket.accept()
        await websocket.send_json(greeting)
        self._connections.add(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        self._connections.discard(websocket)

    async def broadcast(self, message: dict[str, Any]) -> None:
        stale: list[WebSocket] = []
        for websocket in list(self._connections):
            try:
                await websocket.send_json(message)
            except Exception as exc:
                LOGGER.debug("Dropping websocket client: %s", exc)
                stale.append(websocket)

        for websocket in stale:
            self.disconnect(websocket)

    async def publish_bin(self, monitor: FleetMonitor, record: Bin) -> None:
        if self._connections:
            await self.broadcast(bin_update_message(monitor, record))


@router.websocket("/ws/bins")
async def bins_ws(websocket: WebSocket) -> None:
    manager: ConnectionManager = websocket.app.state.ws_manager
    monitor: FleetMonitor = websocket.app.state.monitor
    await manager.connect(websocket, fleet_state_message(monitor))

    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(websocket)
