from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import yaml

AlertPriority = Literal["high", "medium"]


@dataclass(slots=True)
class SeedBin:
    code: str
    name: str
    address: str
    latitude: float
    longitude: float
    capacity: float
    weight: float = 0.0
    battery: int = 100
    online: bool = True
    deposits_today: int = 0
    seconds_since_update: float = 0.0


@dataclass(slots=True)
class ThresholdConfig:
    full_threshold_pct: float = 90.0
    almost_full_pct: float = 70.0
    low_battery_threshold_pct: float = 20.0
    full_priority: AlertPriority = "high"
    low_battery_priority: AlertPriority = "medium"
    offline_priority: AlertPriority = "high"
    offline_liveness_seconds: float = 300.0


@dataclass(slots=True)
class SimulationConfig:
    enabled: bool = True
    interval_seconds: float = 3.0
    seed: int = 0
    sweep_interval_seconds: float = 30.0


@dataclass(slots=True)
class AppConfig:
    bins: list[SeedBin] = field(default_factory=list)
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)


class ConfigError(RuntimeError):
    pass


_PRIORITIES = {"high", "medium"}


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected mapping in {path}")
    return data


def _resolve_config_dir() -> Path:
    env_dir = os.getenv("BINWATCH_CONFIG_DIR")
    if env_dir:
        return Path(env_dir).expanduser().resolve()
    return (Path(__file__).resolve().parents[1] / "config").resolve()


def _parse_priority(raw: Any, default: AlertPriority, key: str) -> AlertPriority:
    value = str(raw if raw is not None else default).strip().lower()
    if value not in _PRIORITIES:
        raise ConfigError(f"Invalid {key} `{value}`. Use high|medium.")
    return value  # type: ignore[return-value]


def _parse_bins(raw_bins: list[dict[str, Any]]) -> list[SeedBin]:
    bins: list[SeedBin] = []
    for item in raw_bins:
        try:
            bins.append(
                SeedBin(
                    code=str(item["code"]),
                    name=str(item["name"]),
                    address=str(item.get("address", "unknown")),
                    latitude=float(item["latitude"]),
                    longitude=float(item["longitude"]),
                    capacity=float(item["capacity"]),
                    weight=float(item.get("weight", 0.0)),
                    battery=int(item.get("battery", 100)),
                    online=bool(item.get("online", True)),
                    deposits_today=int(item.get("deposits_today", 0)),
                    seconds_since_update=float(item.get("seconds_since_update", 0.0)),
                )
            )
        except KeyError as exc:
            raise ConfigError(f"Seed bin is missing required key {exc}") from exc
    return bins


def parse_thresholds(raw: dict[str, Any]) -> ThresholdConfig:
    defaults = ThresholdConfig()
    thresholds = ThresholdConfig(
        full_threshold_pct=float(raw.get("full_threshold_pct", defaults.full_threshold_pct)),
        almost_full_pct=float(raw.get("almost_full_pct", defaults.almost_full_pct)),
        low_battery_threshold_pct=float(
            raw.get("low_battery_threshold_pct", defaults.low_battery_threshold_pct)
        ),
        full_priority=_parse_priority(raw.get("full_priority"), defaults.full_priority, "full_priority"),
        low_battery_priority=_parse_priority(
            raw.get("low_battery_priority"), defaults.low_battery_priority, "low_battery_priority"
        ),
        offline_priority=_parse_priority(
            raw.get("offline_priority"), defaults.offline_priority, "offline_priority"
        ),
        offline_liveness_seconds=float(
            raw.get("offline_liveness_seconds", defaults.offline_liveness_seconds)
        ),
    )
    if not 0 < thresholds.full_threshold_pct <= 100:
        raise ConfigError("full_threshold_pct must be in (0, 100]")
    if thresholds.offline_liveness_seconds < 0:
        raise ConfigError("offline_liveness_seconds must not be negative")
    return thresholds


def load_config(config_dir: Path | None = None) -> AppConfig:
    directory = config_dir or _resolve_config_dir()
    if not directory.exists():
        raise ConfigError(f"Config directory not found: {directory}")

    bins_cfg = _read_yaml(directory / "bins.yaml")
    thresholds_cfg = _read_yaml(directory / "thresholds.yaml")

    bins_raw = bins_cfg.get("bins", []) or []
    if not isinstance(bins_raw, list):
        raise ConfigError("bins.yaml `bins` must be a list")

    simulation_raw = bins_cfg.get("simulation", {}) or {}
    if not isinstance(simulation_raw, dict):
        raise ConfigError("bins.yaml `simulation` must be a dictionary")

    simulation = SimulationConfig(
        enabled=bool(simulation_raw.get("enabled", True)),
        interval_seconds=float(simulation_raw.get("interval_seconds", 3.0)),
        seed=int(simulation_raw.get("seed", 0)),
        sweep_interval_seconds=float(simulation_raw.get("sweep_interval_seconds", 30.0)),
    )

    return AppConfig(
        bins=_parse_bins(bins_raw),
        thresholds=parse_thresholds(thresholds_cfg),
        simulation=simulation,
    )
