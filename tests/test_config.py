from __future__ import annotations

from pathlib import Path

import pytest

from ventsim.compliance import DEFAULT_COMPLIANCE
from ventsim.config import VentilatorConfig, default_config, load_config
from ventsim.telemetry.runner import PRESETS, VentilatorSession, preset_overrides

SHIPPED_CONFIG = Path(__file__).resolve().parents[1] / "config" / "ventilator.json"


def test_shipped_config_loads() -> None:
    cfg = load_config(SHIPPED_CONFIG)
    assert isinstance(cfg, VentilatorConfig)
    assert cfg.mode == "pressure"
    assert cfg.settings.inspiratory_time is None
    assert cfg.estimator.initial_compliance == DEFAULT_COMPLIANCE
    assert cfg.filters.window_size == 100


def test_load_config_overrides(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.json"
    cfg_path.write_text(
        """
        {
          "mode": "pressure",
          "settings": {"frequency": 14, "peak_pressure": 22},
          "estimator": {"history_capacity": 60}
        }
        """,
        encoding="utf-8",
    )
    cfg = load_config(
        cfg_path,
        overrides=["mode=VOLUME", "settings.inspiratory_time=0.9", "filters.alpha_flow=0.25"],
    )
    assert cfg.mode == "volume"
    assert cfg.settings.frequency == 14.0
    assert cfg.settings.peak_pressure == 22.0
    assert cfg.settings.inspiratory_time == 0.9
    assert cfg.estimator.history_capacity == 60
    assert cfg.filters.alpha_flow == 0.25


def test_overrides_without_file_apply_to_defaults() -> None:
    cfg = load_config(overrides=["settings.peep=8"])
    assert cfg.settings.peep == 8.0
    assert cfg.settings.frequency == default_config().settings.frequency


def test_null_override_clears_value() -> None:
    cfg = load_config(overrides=["settings.inspiratory_time=1.0", "settings.inspiratory_time=null"])
    assert cfg.settings.inspiratory_time is None


def test_invalid_configs_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        load_config(overrides=["mode=spontaneous"])
    with pytest.raises(ValueError):
        load_config(overrides=["transport.port=/dev/ttyUSB0"])
    with pytest.raises(ValueError):
        load_config(overrides=["settings.peep"])


def test_preset_overrides_contains_expected_keys() -> None:
    overrides = preset_overrides("adult-vcv")
    assert "mode=volume" in overrides
    assert "settings.inspiratory_time=0.8" in overrides
    assert "settings.tidal_volume=450" in overrides
    assert "settings.inspiratory_time=null" in preset_overrides("adult-pcv")


def test_presets_defined() -> None:
    assert set(PRESETS) == {"adult-vcv", "adult-pcv", "pediatric-pcv"}


@pytest.mark.parametrize("preset", sorted(PRESETS))
def test_presets_pass_validation(preset: str) -> None:
    cfg = load_config(SHIPPED_CONFIG, preset_overrides(preset))
    assert cfg.mode == PRESETS[preset]["mode"]
    assert VentilatorSession(cfg).validate().valid
