from __future__ import annotations

from binwatch.config import ThresholdConfig
from binwatch.models.schemas import BatteryBandLiteral, Bin, BinStatusLiteral, FillBandLiteral

_SEVERITY: dict[str, int] = {
    "offline": 3,
    "full": 2,
    "low_battery": 1,
    "active": 0,
}


def is_full(bin_record: Bin, thresholds: ThresholdConfig) -> bool:
    return bin_record.fill_percentage >= thresholds.full_threshold_pct


def is_low_battery(bin_record: Bin, thresholds: ThresholdConfig) -> bool:
    return bin_record.battery_level < thresholds.low_battery_threshold_pct


def classify(bin_record: Bin, thresholds: ThresholdConfig) -> BinStatusLiteral:
    """Return the single status shown for a bin.

    Only the highest-precedence condition is surfaced (offline, then full, then
    low battery). The alert engine checks every condition on its own.
    """
    if not bin_record.online:
        return "offline"
    if is_full(bin_record, thresholds):
        return "full"
    if is_low_battery(bin_record, thresholds):
        return "low_battery"
    return "active"


def severity(status: BinStatusLiteral) -> int:
    return _SEVERITY[status]


def fill_band(fill_percentage: float, thresholds: ThresholdConfig) -> FillBandLiteral:
    if fill_percentage >= thresholds.full_threshold_pct:
        return "full"
    if fill_percentage >= thresholds.almost_full_pct:
        return "almost_full"
    return "normal"


def battery_band(level: int) -> BatteryBandLiteral:
    if level > 50:
        return "good"
    if level > 20:
        return "fair"
    return "critical"


def format_since(seconds: float) -> str:
    seconds = max(int(seconds), 0)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    return f"{seconds // 3600}h"
