from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from binwatch.engine.monitor import FleetMonitor
from binwatch.engine.store import BinNotFound, UnknownBinMetadata
from binwatch.models.schemas import (
    Alert,
    AlertTypeLiteral,
    BinView,
    FleetAggregate,
    ResolveAlertResponse,
    SensorSnapshot,
)
from binwatch.sensors.gateway import InvalidSnapshot

router = APIRouter(prefix="/api")


def _monitor(request: Request) -> FleetMonitor:
    return request.app.state.monitor


@router.get("/bins", response_model=list[BinView])
async def list_bins(request: Request) -> list[BinView]:
    monitor = _monitor(request)
    return [monitor.view(item) for item in monitor.list_bins()]


@router.get("/bins/{code}", response_model=BinView)
async def get_bin(code: str, request: Request) -> BinView:
    monitor = _monitor(request)
    try:
        record = monitor.get_bin(code)
    except BinNotFound:
        raise HTTPException(status_code=404, detail="Bin not found")
    return monitor.view(record)


@router.get("/alerts", response_model=list[Alert])
async def list_alerts(request: Request) -> list[Alert]:
    return list(_monitor(request).active_alerts())


@router.post("/alerts/{code}/{alert_type}/resolve", response_model=ResolveAlertResponse)
async def resolve_alert(code: str, alert_type: AlertTypeLiteral, request: Request) -> ResolveAlertResponse:
    resolved = _monitor(request).resolve_alert(code, alert_type)
    return ResolveAlertResponse(bin_code=code, alert_type=alert_type, resolved=resolved)


@router.get("/fleet", response_model=FleetAggregate)
async def fleet(request: Request) -> FleetAggregate:
    return _monitor(request).fleet_aggregate()


@router.post("/ingest", response_model=BinView)
async def ingest(payload: SensorSnapshot, request: Request) -> BinView:
    monitor = _monitor(request)
    try:
        record = monitor.ingest(payload)
    except (UnknownBinMetadata, InvalidSnapshot) as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    await request.app.state.ws_manager.publish_bin(monitor, record)
    return monitor.view(record)
