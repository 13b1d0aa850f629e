"""Windowed, error-gated lung compliance re-estimation."""
from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Deque, Optional, Tuple

import numpy as np

from .errors import NonPositiveDivisorError
from .timing import PressureControlDerivation, tidal_volume_pressure_control

if TYPE_CHECKING:
    from .config import EstimatorConfig

logger = logging.getLogger(__name__)

DEFAULT_COMPLIANCE = 0.02051  # L/cmH2O
COMPLIANCE_RANGE = (0.01, 0.2)
PEEP_LOOKBACK = 100


def exponential_filter(new_value: float, previous_value: float, alpha: float) -> float:
    """First-order exponential smoothing: ``alpha*new + (1-alpha)*previous``."""

    if not 0.0 <= alpha <= 1.0:
        raise ValueError(f"alpha must lie in [0, 1], got {alpha}")
    return alpha * new_value + (1 - alpha) * previous_value


@dataclass(frozen=True)
class ComplianceState:
    compliance: float
    cycle_count: int
    pressure_history: Tuple[float, ...]
    peep_history: Tuple[float, ...]
    volume_history: Tuple[float, ...]


@dataclass(frozen=True)
class RecalibrationResult:
    compliance: float
    average_pressure: float
    average_peep: float
    average_volume: float  # litres
    error_percent: float


class ComplianceEstimator:
    """
    Re-estimates compliance from per-cycle (pressure, volume) readings.

    Readings accumulate in bounded ring buffers. Every ``checkpoint_cycles``
    calls the measured pressure of the last cycle is compared with the target
    peak pressure; when the relative error exceeds the threshold the first
    ``discard_cycles`` readings are dropped and compliance becomes
    ``mean(volume) / (mean(pressure) - mean(peep))``. The window is cleared
    after every checkpoint.

    One instance belongs to exactly one simulation session.
    """

    def __init__(
        self,
        initial_compliance: float = DEFAULT_COMPLIANCE,
        *,
        checkpoint_cycles: int = 5,
        error_threshold_percent: float = 5.0,
        discard_cycles: int = 2,
        history_capacity: int = 100,
    ) -> None:
        if not initial_compliance > 0:
            raise ValueError(f"initial_compliance must be positive, got {initial_compliance}")
        if checkpoint_cycles < 1:
            raise ValueError("checkpoint_cycles must be at least 1")
        if not 0 <= discard_cycles < checkpoint_cycles:
            raise ValueError("discard_cycles must be smaller than checkpoint_cycles")
        if history_capacity < checkpoint_cycles:
            raise ValueError("history_capacity must hold at least one checkpoint window")
        self._compliance = float(initial_compliance)
        self.checkpoint_cycles = checkpoint_cycles
        self.error_threshold_percent = error_threshold_percent
        self.discard_cycles = discard_cycles
        self.history_capacity = history_capacity
        self._cycle_count = 0
        self._pressure: Deque[float] = deque(maxlen=history_capacity)
        self._peep: Deque[float] = deque(maxlen=history_capacity)
        self._volume: Deque[float] = deque(maxlen=history_capacity)

    @classmethod
    def from_config(cls, config: "EstimatorConfig") -> "ComplianceEstimator":
        return cls(
            config.initial_compliance,
            checkpoint_cycles=config.checkpoint_cycles,
            error_threshold_percent=config.error_threshold_percent,
            discard_cycles=config.discard_cycles,
            history_capacity=config.history_capacity,
        )

    @property
    def compliance(self) -> float:
        return self._compliance

    @property
    def state(self) -> ComplianceState:
        return ComplianceState(
            compliance=self._compliance,
            cycle_count=self._cycle_count,
            pressure_history=tuple(self._pressure),
            peep_history=tuple(self._peep),
            volume_history=tuple(self._volume),
        )

    def update(
        self,
        peak_pressure: float,
        measured_pressure: float,
        measured_volume: float,
        measured_peep: Optional[float] = None,
    ) -> Optional[RecalibrationResult]:
        """Record one cycle; return the new estimate when a recalibration happened.

        Without *measured_peep* the PEEP of the cycle is approximated by the
        lowest of the last 100 recorded pressures.
        """

        self._pressure.append(float(measured_pressure))
        if measured_peep is None:
            measured_peep = min(list(self._pressure)[-PEEP_LOOKBACK:])
        self._peep.append(float(measured_peep))
        self._volume.append(float(measured_volume))
        self._cycle_count += 1

        if self._cycle_count < self.checkpoint_cycles:
            return None
        try:
            return self._checkpoint(peak_pressure)
        finally:
            self.reset()

    def _checkpoint(self, peak_pressure: float) -> Optional[RecalibrationResult]:
        if not peak_pressure > 0:
            raise NonPositiveDivisorError("peak_pressure", peak_pressure)
        measured = self._pressure[self.checkpoint_cycles - 1]
        error = abs(peak_pressure - measured) / peak_pressure * 100
        if error <= self.error_threshold_percent:
            logger.debug("Pressure error %.2f%% within threshold, compliance kept", error)
            return None

        skip = self.discard_cycles
        avg_pressure = float(np.mean(list(self._pressure)[skip:]))
        avg_peep = float(np.mean(list(self._peep)[skip:]))
        avg_volume = float(np.mean(list(self._volume)[skip:])) / 1000
        driving = avg_pressure - avg_peep
        candidate = avg_volume / driving if driving != 0 else math.nan
        if not (math.isfinite(candidate) and candidate > 0):
            logger.warning(
                "Rejected compliance estimate %s (P=%.2f PEEP=%.2f V=%.4fL), keeping %.5f",
                candidate,
                avg_pressure,
                avg_peep,
                avg_volume,
                self._compliance,
            )
            return None

        self._compliance = candidate
        logger.info(
            "Compliance recalibrated to %.5f L/cmH2O (error=%.1f%%)", candidate, error
        )
        return RecalibrationResult(
            compliance=candidate,
            average_pressure=avg_pressure,
            average_peep=avg_peep,
            average_volume=avg_volume,
            error_percent=error,
        )

    def reset(self) -> None:
        self._cycle_count = 0
        self._pressure.clear()
        self._peep.clear()
        self._volume.clear()

    def set_compliance(self, value: float) -> float:
        """Manually override the estimate, clamped to the physiological range."""

        if not math.isfinite(value):
            raise ValueError(f"compliance must be finite, got {value}")
        low, high = COMPLIANCE_RANGE
        clamped = max(low, min(high, float(value)))
        self._compliance = clamped
        logger.info("Compliance set manually to %.5f L/cmH2O", clamped)
        return clamped

    def derive_pressure_control(
        self, peak_pressure: float, peep: float, inspiratory_time: float
    ) -> PressureControlDerivation:
        return tidal_volume_pressure_control(
            peak_pressure, peep, inspiratory_time, self._compliance
        )
