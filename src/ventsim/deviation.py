"""Target-versus-measured deviation checks with compliance-based suggestions."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .compliance import DEFAULT_COMPLIANCE

ERROR_THRESHOLD_PERCENT = 5.0
COMPLIANCE_NORMAL_RANGE = (0.015, 0.15)

PIP_LIMITS = (5.0, 50.0)
VOLUME_LIMITS = (100.0, 2000.0)
FLOW_LIMITS = (10.0, 150.0)


@dataclass(frozen=True)
class TargetSettings:
    peak_pressure: float
    peep: float
    tidal_volume: float
    max_flow: Optional[float] = None
    inspiratory_time: float = 1.0


@dataclass(frozen=True)
class MeasuredExtremes:
    """Extremes of one measurement window (see ``WindowStats``)."""

    pressure_max: float
    pressure_min: float
    volume_max: float
    flow_max: float


@dataclass(frozen=True)
class Deviation:
    kind: str  # pip | peep | volume | flow | compliance
    message: str
    severity: str  # medium | high
    current_value: float
    target_value: float
    error_percent: Optional[float]
    suggested_adjustment: Optional[float]
    reason: str


def _clamp(value: float, limits: tuple[float, float]) -> float:
    low, high = limits
    return max(low, min(high, value))


def _relative_error(target: float, current: float) -> float:
    return abs(target - current) / abs(target) * 100


def suggest_peak_pressure(target: TargetSettings, compliance: float) -> float:
    if compliance <= 0:
        return target.peak_pressure
    return _clamp((target.tidal_volume / 1000) / compliance + target.peep, PIP_LIMITS)


def suggest_tidal_volume(target: TargetSettings, compliance: float) -> float:
    if compliance <= 0:
        return target.tidal_volume
    return _clamp(compliance * (target.peak_pressure - target.peep) * 1000, VOLUME_LIMITS)


def suggest_max_flow(target: TargetSettings, compliance: float) -> Optional[float]:
    if compliance <= 0 or target.inspiratory_time <= 0:
        return target.max_flow
    volume_l = compliance * (target.peak_pressure - target.peep)
    return _clamp(volume_l * 60 / target.inspiratory_time, FLOW_LIMITS)


def detect_deviations(
    target: TargetSettings,
    measured: MeasuredExtremes,
    compliance: float = DEFAULT_COMPLIANCE,
) -> List[Deviation]:
    """Return every target whose measured counterpart is off by more than 5%.

    Targets equal to zero are skipped.
    """

    deviations: List[Deviation] = []

    if target.peak_pressure:
        error = _relative_error(target.peak_pressure, measured.pressure_max)
        if error > ERROR_THRESHOLD_PERCENT:
            deviations.append(
                Deviation(
                    kind="pip",
                    message=(
                        f"PIP error {error:.1f}% (target {target.peak_pressure:.1f}, "
                        f"measured {measured.pressure_max:.1f})"
                    ),
                    severity="high" if error > 10 else "medium",
                    current_value=measured.pressure_max,
                    target_value=target.peak_pressure,
                    error_percent=error,
                    suggested_adjustment=suggest_peak_pressure(target, compliance),
                    reason=f"Adjusted for compliance {compliance:.5f} L/cmH2O",
                )
            )

    if target.peep:
        error = _relative_error(target.peep, measured.pressure_min)
        if error > ERROR_THRESHOLD_PERCENT:
            deviations.append(
                Deviation(
                    kind="peep",
                    message=(
                        f"PEEP error {error:.1f}% (target {target.peep:.1f}, "
                        f"measured {measured.pressure_min:.1f})"
                    ),
                    severity="high" if error > 10 else "medium",
                    current_value=measured.pressure_min,
                    target_value=target.peep,
                    error_percent=error,
                    suggested_adjustment=target.peep,
                    reason="Keep target PEEP",
                )
            )

    if target.tidal_volume:
        error = _relative_error(target.tidal_volume, measured.volume_max)
        if error > ERROR_THRESHOLD_PERCENT:
            deviations.append(
                Deviation(
                    kind="volume",
                    message=(
                        f"Volume error {error:.1f}% (target {target.tidal_volume:.0f}, "
                        f"measured {measured.volume_max:.0f})"
                    ),
                    severity="high" if error > 15 else "medium",
                    current_value=measured.volume_max,
                    target_value=target.tidal_volume,
                    error_percent=error,
                    suggested_adjustment=suggest_tidal_volume(target, compliance),
                    reason=f"Expected volume at compliance {compliance:.5f} L/cmH2O",
                )
            )

    if target.max_flow:
        error = _relative_error(target.max_flow, measured.flow_max)
        if error > ERROR_THRESHOLD_PERCENT:
            deviations.append(
                Deviation(
                    kind="flow",
                    message=(
                        f"Flow error {error:.1f}% (target {target.max_flow:.1f}, "
                        f"measured {measured.flow_max:.1f})"
                    ),
                    severity="high" if error > 15 else "medium",
                    current_value=measured.flow_max,
                    target_value=target.max_flow,
                    error_percent=error,
                    suggested_adjustment=suggest_max_flow(target, compliance),
                    reason="Flow derived from compliance-corrected volume",
                )
            )

    low, high = COMPLIANCE_NORMAL_RANGE
    if compliance < low or compliance > high:
        deviations.append(
            Deviation(
                kind="compliance",
                message=(
                    f"Compliance {'too low' if compliance < low else 'too high'}: "
                    f"{compliance:.5f} L/cmH2O"
                ),
                severity="medium",
                current_value=compliance,
                target_value=DEFAULT_COMPLIANCE,
                error_percent=None,
                suggested_adjustment=None,
                reason="Check patient condition and ventilator setup",
            )
        )
    return deviations
