from __future__ import annotations

import logging
from collections import deque
from dataclasses import asdict, dataclass
from typing import Callable, Deque, Iterable, List, Optional

import numpy as np
import pandas as pd

from ..compliance import ComplianceEstimator, RecalibrationResult, exponential_filter
from ..config import FilterConfig, VentilatorConfig
from .frames import Sample

logger = logging.getLogger(__name__)

WINDOW_COLUMNS = [
    "pressure_max",
    "pressure_min",
    "pressure_avg",
    "flow_max",
    "flow_min",
    "volume_max",
    "samples",
]


@dataclass(frozen=True)
class WindowStats:
    """Extremes of one block of conditioned samples."""

    pressure_max: float
    pressure_min: float
    pressure_avg: float
    flow_max: float
    flow_min: float
    volume_max: float
    samples: int


@dataclass(frozen=True)
class ConditionedSample:
    pressure: float
    flow: float
    volume: float
    integrated_volume: float
    window: Optional[WindowStats] = None


class SignalConditioner:
    """
    Smooths raw samples with per-channel exponential filters, integrates flow
    into a running volume and summarises every ``window_size`` samples.
    """

    def __init__(self, filters: FilterConfig):
        if filters.window_size < 1:
            raise ValueError("filters.window_size must be at least 1")
        self.filters = filters
        self._pressure = 0.0
        self._flow = 0.0
        self._volume = 0.0
        self._integrated = 0.0
        self._p_buf: List[float] = []
        self._f_buf: List[float] = []
        self._v_buf: List[float] = []

    def process(self, sample: Sample) -> ConditionedSample:
        f = self.filters
        self._pressure = exponential_filter(sample.pressure, self._pressure, f.alpha_pressure)
        self._flow = exponential_filter(sample.flow, self._flow, f.alpha_flow)
        self._volume = exponential_filter(sample.volume, self._volume, f.alpha_volume)

        self._integrated += self._flow
        if self._integrated < 0 or sample.volume == 0:
            self._integrated = 0.0

        self._p_buf.append(self._pressure)
        self._f_buf.append(self._flow)
        self._v_buf.append(self._volume)
        window = None
        if len(self._p_buf) >= f.window_size:
            window = self._close_window()
        return ConditionedSample(
            pressure=self._pressure,
            flow=self._flow,
            volume=self._volume,
            integrated_volume=self._integrated,
            window=window,
        )

    def _close_window(self) -> WindowStats:
        pressure = np.asarray(self._p_buf, dtype=float)
        flow = np.asarray(self._f_buf, dtype=float)
        volume = np.asarray(self._v_buf, dtype=float)
        stats = WindowStats(
            pressure_max=float(pressure.max()),
            pressure_min=float(pressure.min()),
            pressure_avg=float(pressure.mean()),
            flow_max=float(flow.max()),
            flow_min=float(flow.min()),
            volume_max=float(volume.max()),
            samples=int(pressure.size),
        )
        self._p_buf.clear()
        self._f_buf.clear()
        self._v_buf.clear()
        return stats

    def reset_integrated_volume(self) -> None:
        self._integrated = 0.0


class SamplePipeline:
    """
    Glue that conditions decoded samples and feeds completed windows to the
    compliance estimator while ventilating in pressure-control mode.
    """

    def __init__(
        self,
        config: VentilatorConfig,
        estimator: Optional[ComplianceEstimator] = None,
        window_history: int = 500,
    ):
        self.config = config
        self.conditioner = SignalConditioner(config.filters)
        self.estimator = estimator or ComplianceEstimator.from_config(config.estimator)
        self.windows: Deque[WindowStats] = deque(maxlen=window_history)
        self.recalibrations: Deque[RecalibrationResult] = deque(maxlen=window_history)
        self._callbacks: List[Callable[[ConditionedSample], None]] = []
        self._recalibration_callbacks: List[Callable[[RecalibrationResult], None]] = []

    def process(self, samples: Iterable[Sample]) -> List[ConditionedSample]:
        processed: List[ConditionedSample] = []
        for sample in samples:
            conditioned = self.conditioner.process(sample)
            if conditioned.window is not None:
                self._on_window(conditioned.window)
            processed.append(conditioned)
            for callback in self._callbacks:
                callback(conditioned)
        return processed

    def _on_window(self, window: WindowStats) -> None:
        self.windows.append(window)
        logger.debug(
            "Window closed: PMax=%.1f PMin=%.1f FMax=%.0f FMin=%.0f VMax=%.0f",
            window.pressure_max,
            window.pressure_min,
            window.flow_max,
            window.flow_min,
            window.volume_max,
        )
        if self.config.mode != "pressure":
            return
        result = self.estimator.update(
            self.config.settings.peak_pressure,
            window.pressure_max,
            window.volume_max,
            measured_peep=window.pressure_min,
        )
        if result is None:
            return
        self.recalibrations.append(result)
        for callback in self._recalibration_callbacks:
            callback(result)

    def register_callback(self, callback: Callable[[ConditionedSample], None]) -> None:
        self._callbacks.append(callback)

    def register_recalibration_callback(
        self, callback: Callable[[RecalibrationResult], None]
    ) -> None:
        self._recalibration_callbacks.append(callback)


def window_table(windows: Iterable[WindowStats]) -> pd.DataFrame:
    """Tabulate window statistics, one row per window."""

    rows = [asdict(window) for window in windows]
    return pd.DataFrame(rows, columns=WINDOW_COLUMNS)
