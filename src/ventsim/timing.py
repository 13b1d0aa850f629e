"""Breath-cycle timing and flow/pressure derivations."""
from __future__ import annotations

from dataclasses import dataclass

from .errors import NonPositiveDivisorError, PreconditionError

# Empirical calibration data from the reference ventilator bench.
FLOW_CORRECTION = 0.98
TANK_PRESSURE_COEFFS = (0.0025, 0.2203, -0.5912)


@dataclass(frozen=True)
class IERatio:
    label: str
    decimal: float
    inverted: bool


@dataclass(frozen=True)
class TimingResult:
    """Inspiratory/expiratory split of one usable breath cycle (seconds)."""

    inspiratory_time: float
    expiratory_time: float
    cycle_time: float
    ratio_label: str
    inspiratory_fraction: float


@dataclass(frozen=True)
class PressureControlDerivation:
    tidal_volume: float  # mL
    max_flow: float  # L/min
    tank_pressure: float


def _require_positive(name: str, value: float) -> float:
    if not value > 0:
        raise NonPositiveDivisorError(name, value)
    return float(value)


def _format_ratio_term(value: float) -> str:
    return format(value, "g")


def cycle_time(frequency: float) -> float:
    """Return the total breath period in seconds for *frequency* breaths/min."""

    return 60.0 / _require_positive("frequency", frequency)


def expiratory_time(
    frequency: float,
    inspiratory_time: float,
    inspiratory_pause: float = 0.0,
) -> float:
    return cycle_time(frequency) - inspiratory_time - inspiratory_pause


def ie_ratio(inspiratory_time: float, expiratory_time: float) -> IERatio:
    """Express ti/te as ``"r:1"`` when inverted, ``"1:x"`` otherwise."""

    te = _require_positive("expiratory_time", expiratory_time)
    ti = _require_positive("inspiratory_time", inspiratory_time)
    ratio = ti / te
    if ratio > 1:
        return IERatio(label=f"{ratio:.1f}:1", decimal=ratio, inverted=True)
    return IERatio(label=f"1:{1 / ratio:.1f}", decimal=ratio, inverted=False)


def slider_inspiratory_fraction(slider: int) -> tuple[float, str]:
    """Return the inspiratory share of the cycle and its ratio label."""

    if slider == 0:
        return 0.5, "1:1"
    step = abs(slider) / 10
    if slider > 0:
        return 1 / (2 + step), f"1:{_format_ratio_term(1 + step)}"
    return (1 + step) / (2 + step), f"{_format_ratio_term(1 + step)}:1"


def timing_from_ratio_slider(
    frequency: float,
    slider: int,
    exp_pause_1: float = 0.0,
    exp_pause_2: float = 0.0,
) -> TimingResult:
    """Split the usable cycle according to the signed I:E slider.

    Expiratory pauses are removed from the cycle before the split, so the
    returned ``cycle_time`` is the usable part only.
    """

    usable = cycle_time(frequency) - exp_pause_1 - exp_pause_2
    if usable <= 0:
        raise PreconditionError(
            f"Expiratory pauses ({exp_pause_1 + exp_pause_2:.3f}s) leave no usable cycle time"
        )
    fraction, label = slider_inspiratory_fraction(slider)
    ti = usable * fraction
    return TimingResult(
        inspiratory_time=ti,
        expiratory_time=usable - ti,
        cycle_time=usable,
        ratio_label=label,
        inspiratory_fraction=fraction,
    )


def max_flow(tidal_volume: float, inspiratory_time: float) -> float:
    """Peak flow in L/min for a volume-control breath (mL over seconds)."""

    ti = _require_positive("inspiratory_time", inspiratory_time)
    return (60 * tidal_volume) / (1000 * ti) * FLOW_CORRECTION


def tank_pressure(max_flow: float) -> float:
    a, b, c = TANK_PRESSURE_COEFFS
    return a * max_flow**2 + b * max_flow + c


def tidal_volume_pressure_control(
    peak_pressure: float,
    peep: float,
    inspiratory_time: float,
    compliance: float,
) -> PressureControlDerivation:
    """Volume, flow and supply pressure delivered by a pressure-control breath."""

    ti = _require_positive("inspiratory_time", inspiratory_time)
    volume_l = compliance * (peak_pressure - peep)
    flow = volume_l / (ti / 60)
    return PressureControlDerivation(
        tidal_volume=1000 * volume_l,
        max_flow=flow,
        tank_pressure=tank_pressure(flow),
    )
