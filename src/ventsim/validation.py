"""Safety validation of candidate ventilator configurations.

Three tiers of rules are applied to every configuration:

* critical - absolute bounds and cross-parameter consistency; any hit blocks
  transmission to the ventilator,
* warning - clinically risky but permitted once acknowledged by the operator,
* patient class - extra warnings for configurations that look pediatric or adult.

Validation never raises for out-of-range input; the outcome is always a
:class:`ValidationResult`.
"""
from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Tuple

from .errors import PreconditionError
from .timing import expiratory_time as derive_expiratory_time
from .timing import slider_inspiratory_fraction, timing_from_ratio_slider

if TYPE_CHECKING:
    from .config import VentilatorSettings

CYCLE_TOLERANCE_S = 0.5


class PatientType(str, enum.Enum):
    PEDIATRIC = "pediatric"
    ADULT = "adult"
    GENERAL = "general"


class Severity(str, enum.Enum):
    SAFE = "safe"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    critical_errors: Tuple[str, ...]
    warnings: Tuple[str, ...]
    patient_type: PatientType
    severity: Severity


@dataclass
class _Findings:
    patient_type: PatientType
    critical: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def check_range(self, label: str, value: float, low: float, high: float, unit: str) -> None:
        if not low <= value <= high:
            self.critical.append(f"{label} must be between {low:g} and {high:g} {unit}".rstrip())

    def result(self) -> ValidationResult:
        if self.critical:
            severity = Severity.CRITICAL
        elif self.warnings:
            severity = Severity.WARNING
        else:
            severity = Severity.SAFE
        return ValidationResult(
            valid=not self.critical,
            critical_errors=tuple(self.critical),
            warnings=tuple(self.warnings),
            patient_type=self.patient_type,
            severity=severity,
        )


def classify_patient(tidal_volume: float, frequency: float) -> PatientType:
    if tidal_volume < 200 and frequency > 20:
        return PatientType.PEDIATRIC
    if tidal_volume > 400 and frequency < 20:
        return PatientType.ADULT
    return PatientType.GENERAL


def _ie_decimal(inspiratory_time: float, expiratory_time: float, ie_ratio_slider: int) -> float:
    if expiratory_time > 0:
        return inspiratory_time / expiratory_time
    fraction, _ = slider_inspiratory_fraction(ie_ratio_slider)
    return fraction / (1 - fraction)


def _collect(
    frequency: float,
    inspiratory_time: float,
    expiratory_time: float,
    tidal_volume: float,
    peak_pressure: float,
    peep: float,
    fio2: float,
    ie_ratio_slider: int,
) -> _Findings:
    findings = _Findings(patient_type=classify_patient(tidal_volume, frequency))

    findings.check_range("Frequency", frequency, 5, 60, "breaths/min")
    findings.check_range("FiO2", fio2, 21, 100, "%")
    findings.check_range("PEEP", peep, 0, 20, "cmH2O")
    findings.check_range("Peak pressure", peak_pressure, 5, 60, "cmH2O")
    findings.check_range("Tidal volume", tidal_volume, 50, 2000, "mL")
    findings.check_range("Inspiratory time", inspiratory_time, 0.2, 3.0, "s")
    findings.check_range("Expiratory time", expiratory_time, 0.2, 10.0, "s")
    if peak_pressure <= peep:
        findings.critical.append(
            f"Peak pressure ({peak_pressure:g}) must exceed PEEP ({peep:g})"
        )

    warnings = findings.warnings
    if peak_pressure > 50:
        warnings.append("Peak pressure above 50 cmH2O: critical barotrauma risk")
    elif peak_pressure > 35:
        warnings.append("Peak pressure above 35 cmH2O: barotrauma risk")
    if peep > 15:
        warnings.append("PEEP above 15 cmH2O may impair venous return")
    if tidal_volume > 1000:
        warnings.append("Tidal volume above 1000 mL: volutrauma risk")
    elif tidal_volume < 200:
        warnings.append("Tidal volume below 200 mL: atelectasis risk")
    if frequency > 35:
        warnings.append("Frequency above 35 breaths/min: auto-PEEP risk")
    elif frequency < 8:
        warnings.append("Frequency below 8 breaths/min: hypoventilation risk")

    ratio = _ie_decimal(inspiratory_time, expiratory_time, ie_ratio_slider)
    if ratio > 2.0:
        warnings.append(f"I:E ratio {ratio:.2f} above 2.0: severe hemodynamic risk")
    elif ratio > 1.5:
        warnings.append(f"I:E ratio {ratio:.2f} above 1.5: inverse-ratio ventilation")

    if fio2 > 95:
        warnings.append("FiO2 above 95%: high oxygen toxicity risk")
    elif fio2 > 80:
        warnings.append("FiO2 above 80%: oxygen toxicity risk with prolonged use")

    # A shorter breath leaves room for pauses; only an overrun is inconsistent.
    if frequency > 0:
        expected = 60.0 / frequency
        total = inspiratory_time + expiratory_time
        if total - expected > CYCLE_TOLERANCE_S:
            warnings.append(
                f"Cycle time {total:.2f}s exceeds 60/frequency ({expected:.2f}s)"
            )

    if findings.patient_type is PatientType.PEDIATRIC:
        if tidal_volume > 500:
            warnings.append("Pediatric patient: tidal volume above 500 mL")
        if peak_pressure > 30:
            warnings.append("Pediatric patient: peak pressure above 30 cmH2O")
    elif findings.patient_type is PatientType.ADULT:
        if tidal_volume < 300:
            warnings.append("Adult patient: tidal volume below 300 mL")
    return findings


def _volume_control_rules(findings: _Findings, inspiratory_time: float, tidal_volume: float) -> None:
    if tidal_volume < 100:
        findings.critical.append("Volume control requires a tidal volume of at least 100 mL")
    if inspiratory_time < 0.3:
        findings.critical.append("Volume control requires an inspiratory time of at least 0.3 s")


def _pressure_control_rules(findings: _Findings, peak_pressure: float, peep: float) -> None:
    driving = peak_pressure - peep
    if driving < 5:
        findings.warnings.append(
            f"Driving pressure {driving:g} cmH2O below 5: tidal volume likely inadequate"
        )
    elif driving > 40:
        findings.warnings.append(f"Driving pressure {driving:g} cmH2O above 40: volutrauma risk")


def validate(
    frequency: float,
    inspiratory_time: float,
    expiratory_time: float,
    tidal_volume: float,
    peak_pressure: float,
    peep: float,
    fio2: float,
    ie_ratio_slider: int = 0,
) -> ValidationResult:
    """Classify a configuration as safe, warning or critical."""

    return _collect(
        frequency, inspiratory_time, expiratory_time, tidal_volume,
        peak_pressure, peep, fio2, ie_ratio_slider,
    ).result()


def validate_volume_control(
    frequency: float,
    inspiratory_time: float,
    expiratory_time: float,
    tidal_volume: float,
    peak_pressure: float,
    peep: float,
    fio2: float,
    ie_ratio_slider: int = 0,
) -> ValidationResult:
    findings = _collect(
        frequency, inspiratory_time, expiratory_time, tidal_volume,
        peak_pressure, peep, fio2, ie_ratio_slider,
    )
    _volume_control_rules(findings, inspiratory_time, tidal_volume)
    return findings.result()


def validate_pressure_control(
    frequency: float,
    inspiratory_time: float,
    expiratory_time: float,
    tidal_volume: float,
    peak_pressure: float,
    peep: float,
    fio2: float,
    ie_ratio_slider: int = 0,
) -> ValidationResult:
    findings = _collect(
        frequency, inspiratory_time, expiratory_time, tidal_volume,
        peak_pressure, peep, fio2, ie_ratio_slider,
    )
    _pressure_control_rules(findings, peak_pressure, peep)
    return findings.result()


def resolve_timing(settings: "VentilatorSettings") -> Tuple[float, float]:
    """Return (inspiratory, expiratory) time for *settings*.

    An explicit inspiratory time wins over the I:E slider.
    """

    if settings.inspiratory_time is not None:
        ti = settings.inspiratory_time
        te = derive_expiratory_time(settings.frequency, ti, settings.inspiratory_pause)
        return ti, te
    timing = timing_from_ratio_slider(
        settings.frequency,
        settings.ie_ratio_slider,
        settings.expiratory_pause_1,
        settings.expiratory_pause_2,
    )
    return timing.inspiratory_time, timing.expiratory_time


def validate_settings(settings: "VentilatorSettings", mode: str) -> ValidationResult:
    """Validate a settings object for the given ventilation *mode*."""

    timing_error = None
    try:
        ti, te = resolve_timing(settings)
    except PreconditionError as exc:
        timing_error = f"Cannot derive breath timing: {exc}"
        ti = te = math.nan

    findings = _collect(
        settings.frequency, ti, te, settings.tidal_volume,
        settings.peak_pressure, settings.peep, settings.fio2, settings.ie_ratio_slider,
    )
    if mode == "volume":
        _volume_control_rules(findings, ti, settings.tidal_volume)
    elif mode == "pressure":
        _pressure_control_rules(findings, settings.peak_pressure, settings.peep)
    else:
        raise ValueError(f"Unsupported mode '{mode}'")
    if timing_error:
        findings.critical.insert(0, timing_error)
    return findings.result()
