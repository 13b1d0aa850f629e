from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from .compliance import DEFAULT_COMPLIANCE

VENTILATION_MODES = {"pressure", "volume"}


@dataclass
class VentilatorSettings:
    frequency: float = 12.0
    inspiratory_time: Optional[float] = None  # None -> derived from the I:E slider
    ie_ratio_slider: int = 10
    tidal_volume: float = 500.0
    peak_pressure: float = 20.0
    peep: float = 5.0
    fio2: float = 21.0
    inspiratory_pause: float = 0.0
    expiratory_pause_1: float = 0.0
    expiratory_pause_2: float = 0.0


@dataclass
class EstimatorConfig:
    initial_compliance: float = DEFAULT_COMPLIANCE
    checkpoint_cycles: int = 5
    error_threshold_percent: float = 5.0
    discard_cycles: int = 2
    history_capacity: int = 100


@dataclass
class FilterConfig:
    alpha_pressure: float = 0.1
    alpha_flow: float = 0.5
    alpha_volume: float = 0.3
    window_size: int = 100


@dataclass
class HostRuntime:
    stats_log_interval: int = 1000  # frames between stats log lines


@dataclass
class VentilatorConfig:
    mode: str = "pressure"  # pressure | volume
    settings: VentilatorSettings = field(default_factory=VentilatorSettings)
    estimator: EstimatorConfig = field(default_factory=EstimatorConfig)
    filters: FilterConfig = field(default_factory=FilterConfig)
    host: HostRuntime = field(default_factory=HostRuntime)

    @property
    def mode_enum(self) -> str:
        mode = self.mode.lower()
        if mode not in VENTILATION_MODES:
            raise ValueError(f"Unsupported mode '{self.mode}'")
        return mode


def default_config() -> VentilatorConfig:
    return VentilatorConfig()


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {**base}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = _merge(base[key], value)  # type: ignore[index]
        else:
            merged[key] = value
    return merged


def load_config(
    path: Path | str | None = None, overrides: Sequence[str] | None = None
) -> VentilatorConfig:
    """
    Load a ventilator session configuration from JSON and apply CLI-style overrides.

    Overrides are expressed as dotted `key=value` pairs, e.g.:
        ["mode=volume", "settings.frequency=14", "estimator.history_capacity=50"]
    Without *path* the overrides apply to the built-in defaults.
    """
    data: Dict[str, Any] = _load_json(Path(path)) if path is not None else {}
    override_data: Dict[str, Any] = {}
    for override in overrides or []:
        key, raw_value = _parse_override(override)
        _assign_nested(override_data, key, raw_value)
    merged = _merge(data, override_data)
    unknown = set(merged) - {"mode", "settings", "estimator", "filters", "host"}
    if unknown:
        raise ValueError(f"Unknown config keys: {sorted(unknown)}")

    settings_data = merged.get("settings") or {}
    estimator_data = merged.get("estimator") or {}
    filter_data = merged.get("filters") or {}
    host_data = merged.get("host") or {}
    ti = settings_data.get("inspiratory_time")
    config = VentilatorConfig(
        mode=str(merged.get("mode", "pressure")),
        settings=VentilatorSettings(
            frequency=float(settings_data.get("frequency", 12.0)),
            inspiratory_time=float(ti) if ti is not None else None,
            ie_ratio_slider=int(settings_data.get("ie_ratio_slider", 10)),
            tidal_volume=float(settings_data.get("tidal_volume", 500.0)),
            peak_pressure=float(settings_data.get("peak_pressure", 20.0)),
            peep=float(settings_data.get("peep", 5.0)),
            fio2=float(settings_data.get("fio2", 21.0)),
            inspiratory_pause=float(settings_data.get("inspiratory_pause", 0.0)),
            expiratory_pause_1=float(settings_data.get("expiratory_pause_1", 0.0)),
            expiratory_pause_2=float(settings_data.get("expiratory_pause_2", 0.0)),
        ),
        estimator=EstimatorConfig(
            initial_compliance=float(estimator_data.get("initial_compliance", DEFAULT_COMPLIANCE)),
            checkpoint_cycles=int(estimator_data.get("checkpoint_cycles", 5)),
            error_threshold_percent=float(estimator_data.get("error_threshold_percent", 5.0)),
            discard_cycles=int(estimator_data.get("discard_cycles", 2)),
            history_capacity=int(estimator_data.get("history_capacity", 100)),
        ),
        filters=FilterConfig(
            alpha_pressure=float(filter_data.get("alpha_pressure", 0.1)),
            alpha_flow=float(filter_data.get("alpha_flow", 0.5)),
            alpha_volume=float(filter_data.get("alpha_volume", 0.3)),
            window_size=int(filter_data.get("window_size", 100)),
        ),
        host=HostRuntime(
            stats_log_interval=int(host_data.get("stats_log_interval", 1000)),
        ),
    )
    config.mode = config.mode_enum
    return config


def _parse_override(item: str) -> tuple[str, Any]:
    if "=" not in item:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    key, raw_value = item.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError("Override key may not be empty")
    value = _coerce_value(raw_value.strip())
    return key, value


def _coerce_value(raw: str) -> Any:
    if raw.lower() in {"true", "false"}:
        return raw.lower() == "true"
    if raw.lower() in {"null", "none"}:
        return None
    try:
        if "." in raw or "e" in raw.lower():
            return float(raw)
        return int(raw)
    except ValueError:
        pass
    if raw.startswith("[") and raw.endswith("]"):
        return json.loads(raw)
    if raw.startswith("{") and raw.endswith("}"):
        return json.loads(raw)
    return raw


def _assign_nested(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    cursor = target
    parts = dotted_key.split(".")
    for part in parts[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[parts[-1]] = value
