from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

BinStatusLiteral = Literal["active", "full", "low_battery", "offline"]
AlertTypeLiteral = Literal["full", "low_battery", "offline"]
AlertPriorityLiteral = Literal["high", "medium"]
FillBandLiteral = Literal["normal", "almost_full", "full"]
BatteryBandLiteral = Literal["good", "fair", "critical"]


class Bin(BaseModel):
    """Immutable record of one bin as last reported.

    Records are replaced wholesale by the store, never edited, so any reference a
    reader holds is a consistent copy.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    address: str
    latitude: float
    longitude: float
    current_weight: float = Field(ge=0)
    capacity: float = Field(gt=0)
    battery_level: int = Field(ge=0, le=100)
    online: bool
    last_update: datetime
    deposits_today: int = Field(default=0, ge=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def fill_percentage(self) -> float:
        return self.current_weight / self.capacity * 100.0


class SensorSnapshot(BaseModel):
    """One reading as delivered by a device or producer.

    Only `code` and `timestamp` are mandatory. Identity fields are needed the first
    time a code is seen.
    """

    code: str = Field(min_length=1)
    timestamp: datetime
    weight: float | None = Field(default=None, allow_inf_nan=False)
    battery: int | None = None
    online: bool | None = None
    deposit_increment: int | None = None
    name: str | None = None
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    capacity: float | None = Field(default=None, gt=0)


class Alert(BaseModel):
    model_config = ConfigDict(frozen=True)

    bin_code: str
    alert_type: AlertTypeLiteral
    message: str
    priority: AlertPriorityLiteral
    created_at: datetime
    last_seen: datetime


class FleetAggregate(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_bins: int = 0
    online_bins: int = 0
    full_bins: int = 0
    low_battery_bins: int = 0
    deposits_today: int = 0
    total_weight: float = 0.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def online_pct(self) -> float:
        if self.total_bins == 0:
            return 0.0
        return round(self.online_bins / self.total_bins * 100.0, 2)


class BinView(BaseModel):
    bin: Bin
    status: BinStatusLiteral
    fill_band: FillBandLiteral
    battery_band: BatteryBandLiteral
    since_update: str
    alerts_active: bool


class ResolveAlertResponse(BaseModel):
    bin_code: str
    alert_type: AlertTypeLiteral
    resolved: bool
