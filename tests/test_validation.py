from __future__ import annotations

import math

import pytest

from ventsim.config import VentilatorSettings
from ventsim.validation import (
    PatientType,
    Severity,
    classify_patient,
    resolve_timing,
    validate,
    validate_pressure_control,
    validate_settings,
    validate_volume_control,
)

ADULT_VCV = dict(
    frequency=12,
    inspiratory_time=0.8,
    expiratory_time=3.2,
    tidal_volume=450,
    peak_pressure=25,
    peep=5,
    fio2=40,
)


def _adult(**changes):
    params = {**ADULT_VCV, **changes}
    return validate(**params)


def test_typical_adult_volume_control_is_safe() -> None:
    result = validate(12, 0.8, 3.2, 450, 25, 5, 40, 0)
    assert result.valid
    assert result.severity is Severity.SAFE
    assert result.critical_errors == ()
    assert result.warnings == ()
    assert result.patient_type is PatientType.ADULT


def test_peak_below_peep_blocks_configuration() -> None:
    result = validate(20, 1, 2, 500, 15, 20, 50, 0)
    assert not result.valid
    assert result.severity is Severity.CRITICAL
    assert any("must exceed PEEP" in msg for msg in result.critical_errors)


@pytest.mark.parametrize(
    "field, value, label",
    [
        ("frequency", 4, "Frequency"),
        ("frequency", 61, "Frequency"),
        ("fio2", 20, "FiO2"),
        ("fio2", 101, "FiO2"),
        ("peep", -1, "PEEP"),
        ("peep", 21, "PEEP"),
        ("peak_pressure", 61, "Peak pressure"),
        ("tidal_volume", 40, "Tidal volume"),
        ("tidal_volume", 2100, "Tidal volume"),
        ("inspiratory_time", 0.1, "Inspiratory time"),
        ("inspiratory_time", 3.5, "Inspiratory time"),
        ("expiratory_time", 0.1, "Expiratory time"),
        ("expiratory_time", 11, "Expiratory time"),
    ],
)
def test_out_of_range_values_are_critical(field: str, value: float, label: str) -> None:
    result = _adult(**{field: value})
    assert not result.valid
    assert result.severity is Severity.CRITICAL
    assert any(msg.startswith(label) for msg in result.critical_errors)


def test_nan_input_is_critical() -> None:
    result = _adult(tidal_volume=math.nan)
    assert not result.valid


def test_bounds_are_inclusive() -> None:
    result = _adult(fio2=21, peep=0)
    assert result.valid


@pytest.mark.parametrize(
    "changes, fragment",
    [
        ({"peak_pressure": 40}, "above 35"),
        ({"peak_pressure": 55}, "above 50"),
        ({"peep": 16}, "venous return"),
        ({"tidal_volume": 1200}, "volutrauma"),
        ({"tidal_volume": 180}, "atelectasis"),
        ({"fio2": 85}, "above 80%"),
        ({"fio2": 97}, "above 95%"),
    ],
)
def test_risky_values_are_warnings(changes, fragment: str) -> None:
    result = _adult(**changes)
    assert result.valid
    assert result.severity is Severity.WARNING
    assert any(fragment in msg for msg in result.warnings)


def test_tiered_warnings_report_only_the_higher_tier() -> None:
    result = _adult(peak_pressure=55)
    assert [msg for msg in result.warnings if "Peak pressure" in msg] == [
        "Peak pressure above 50 cmH2O: critical barotrauma risk"
    ]


def test_frequency_warnings() -> None:
    fast = validate(40, 0.5, 1.0, 450, 25, 5, 40)
    assert any("auto-PEEP" in msg for msg in fast.warnings)
    slow = validate(6, 1.0, 9.0, 450, 25, 5, 40)
    assert any("hypoventilation" in msg for msg in slow.warnings)


def test_inverse_ratio_warnings() -> None:
    mild = validate(12, 2.4, 1.5, 450, 25, 5, 40)
    assert any("above 1.5" in msg for msg in mild.warnings)
    severe = validate(12, 3.0, 1.2, 450, 25, 5, 40)
    assert any("above 2.0" in msg for msg in severe.warnings)
    assert not any("above 1.5" in msg for msg in severe.warnings)


def test_cycle_overrun_is_flagged() -> None:
    result = _adult(inspiratory_time=1.5, expiratory_time=4.2)
    assert any("Cycle time" in msg for msg in result.warnings)
    assert not any("Cycle time" in msg for msg in _adult().warnings)


def test_patient_classification() -> None:
    assert classify_patient(150, 25) is PatientType.PEDIATRIC
    assert classify_patient(500, 12) is PatientType.ADULT
    assert classify_patient(300, 20) is PatientType.GENERAL


def test_pediatric_specific_warnings() -> None:
    result = validate(25, 0.8, 1.6, 150, 32, 5, 40)
    assert result.patient_type is PatientType.PEDIATRIC
    assert "Pediatric patient: peak pressure above 30 cmH2O" in result.warnings
    assert any("atelectasis" in msg for msg in result.warnings)


def test_volume_control_extra_critical_rules() -> None:
    result = validate_volume_control(12, 0.25, 4.0, 80, 25, 5, 40)
    assert not result.valid
    assert any("at least 100 mL" in msg for msg in result.critical_errors)
    assert any("at least 0.3 s" in msg for msg in result.critical_errors)
    # the generic validator accepts the same timing
    assert validate(12, 0.25, 4.0, 80, 25, 5, 40).valid


def test_pressure_control_driving_pressure_warnings() -> None:
    low = validate_pressure_control(12, 1.0, 4.0, 500, 12, 8, 40)
    assert low.valid
    assert any("below 5" in msg for msg in low.warnings)
    high = validate_pressure_control(12, 1.0, 4.0, 500, 48, 5, 40)
    assert any("above 40" in msg for msg in high.warnings)


def test_resolve_timing_prefers_explicit_inspiratory_time() -> None:
    ti, te = resolve_timing(VentilatorSettings(frequency=12, inspiratory_time=1.0))
    assert (ti, te) == pytest.approx((1.0, 4.0))
    ti, te = resolve_timing(VentilatorSettings(frequency=12, ie_ratio_slider=10))
    assert (ti, te) == pytest.approx((5 / 3, 10 / 3))


def test_validate_settings_reports_timing_failure() -> None:
    settings = VentilatorSettings(frequency=0)
    result = validate_settings(settings, "pressure")
    assert not result.valid
    assert result.critical_errors[0].startswith("Cannot derive breath timing")


def test_validate_settings_rejects_unknown_mode() -> None:
    with pytest.raises(ValueError):
        validate_settings(VentilatorSettings(), "spontaneous")


def test_low_tidal_volume_in_adult_rate_is_general_with_warning() -> None:
    result = _adult(tidal_volume=180)
    assert result.valid
    assert result.severity is Severity.WARNING
    assert result.patient_type is PatientType.GENERAL
    assert result.warnings == ("Tidal volume below 200 mL: atelectasis risk",)
