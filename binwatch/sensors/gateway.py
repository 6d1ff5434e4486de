from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from binwatch.engine.store import BinNotFound, BinStore, clamp
from binwatch.models.schemas import Bin, SensorSnapshot

LOGGER = logging.getLogger(__name__)


class InvalidSnapshot(ValueError):
    pass


class IngestionGateway:
    """Single entry point for sensor snapshots, whatever produced them."""

    def __init__(self, store: BinStore) -> None:
        self.store = store

    def ingest(self, snapshot: SensorSnapshot | Mapping[str, Any]) -> Bin:
        if not isinstance(snapshot, SensorSnapshot):
            try:
                snapshot = SensorSnapshot.model_validate(snapshot)
            except ValidationError as exc:
                raise InvalidSnapshot(f"Malformed snapshot: {exc}") from exc

        fields = snapshot.model_dump(exclude={"code"}, exclude_none=True)
        self._clamp_fields(snapshot.code, fields)
        return self.store.apply_snapshot(snapshot.code, fields)

    def _capacity_for(self, code: str, fields: dict[str, Any]) -> float | None:
        try:
            return self.store.get(code).capacity
        except BinNotFound:
            return fields.get("capacity")

    def _clamp_fields(self, code: str, fields: dict[str, Any]) -> None:
        if "weight" in fields:
            capacity = self._capacity_for(code, fields)
            upper = capacity if capacity is not None else float("inf")
            fields["weight"] = self._clamped(code, "weight", fields["weight"], 0.0, upper)

        if "battery" in fields:
            fields["battery"] = int(self._clamped(code, "battery", fields["battery"], 0, 100))

        if "deposit_increment" in fields:
            fields["deposit_increment"] = int(
                self._clamped(code, "deposit_increment", fields["deposit_increment"], 0, float("inf"))
            )

    @staticmethod
    def _clamped(code: str, name: str, value: float, low: float, high: float) -> float:
        bounded = clamp(value, low, high)
        if bounded != value:
            LOGGER.warning("Out-of-range %s for %s: %s clamped to %s", name, code, value, bounded)
        return bounded
