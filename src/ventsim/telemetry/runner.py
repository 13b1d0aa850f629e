from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..compliance import ComplianceEstimator, RecalibrationResult
from ..config import VentilatorConfig
from ..deviation import Deviation, MeasuredExtremes, TargetSettings, detect_deviations
from ..errors import PreconditionError
from ..timing import max_flow
from ..validation import ValidationResult, resolve_timing, validate_settings
from .frames import FrameParser, iterate_text_stream
from .processing import ConditionedSample, SamplePipeline

logger = logging.getLogger(__name__)


PRESETS: Dict[str, Dict[str, Any]] = {
    "adult-vcv": {
        "mode": "volume",
        "settings": {
            "frequency": 12,
            "inspiratory_time": 0.8,
            "tidal_volume": 450,
            "peak_pressure": 25,
            "peep": 5,
            "fio2": 40,
        },
    },
    "adult-pcv": {
        "mode": "pressure",
        "settings": {
            "frequency": 14,
            "ie_ratio_slider": 10,
            "tidal_volume": 500,
            "peak_pressure": 20,
            "peep": 5,
            "fio2": 40,
        },
    },
    "pediatric-pcv": {
        "mode": "pressure",
        "settings": {
            "frequency": 25,
            "ie_ratio_slider": 5,
            "tidal_volume": 150,
            "peak_pressure": 18,
            "peep": 5,
            "fio2": 30,
        },
    },
}


def preset_overrides(preset: str) -> list[str]:
    data = PRESETS[preset]
    overrides = [f"mode={data['mode']}"]
    overrides.extend(f"settings.{key}={value}" for key, value in data["settings"].items())
    if "inspiratory_time" not in data["settings"]:
        overrides.append("settings.inspiratory_time=null")
    return overrides


@dataclass(frozen=True)
class SessionSummary:
    processed: int
    decode_errors: int
    windows: int
    recalibrations: int
    deviations: int
    compliance: float
    last_recalibration: Optional[RecalibrationResult]


class VentilatorSession:
    """One simulated patient: owns its estimator, conditioner and frame parser."""

    def __init__(self, config: VentilatorConfig, estimator: Optional[ComplianceEstimator] = None):
        self.config = config
        self.parser = FrameParser()
        self.pipeline = SamplePipeline(config, estimator)
        self.pipeline.register_recalibration_callback(self._on_recalibration)
        self.pipeline.register_callback(self._on_sample)
        self.last_deviations: List[Deviation] = []
        self._deviation_count = 0
        self._targets = self._deviation_targets()
        self._processed = 0

    @property
    def estimator(self) -> ComplianceEstimator:
        return self.pipeline.estimator

    def validate(self) -> ValidationResult:
        result = validate_settings(self.config.settings, self.config.mode)
        if not result.valid:
            logger.warning(
                "Configuration blocked: %d critical error(s): %s",
                len(result.critical_errors),
                "; ".join(result.critical_errors),
            )
        elif result.warnings:
            logger.info("Configuration accepted with %d warning(s)", len(result.warnings))
        return result

    def run(self, lines: Iterable[str]) -> SessionSummary:
        """Decode and process every frame in *lines* (e.g. a file or stdin)."""

        interval = max(int(self.config.host.stats_log_interval), 1)
        logger.info(
            "Session started (mode=%s, compliance=%.5f)",
            self.config.mode,
            self.estimator.compliance,
        )
        for sample in self.parser.parse_lines(iterate_text_stream(lines)):
            self.pipeline.process([sample])
            self._processed += 1
            if self._processed % interval == 0:
                self._emit_stats()
        summary = self.summary()
        logger.info(
            "Processed %d samples (decode_errors=%d windows=%d recalibrations=%d)",
            summary.processed,
            summary.decode_errors,
            summary.windows,
            summary.recalibrations,
        )
        return summary

    def summary(self) -> SessionSummary:
        recalibrations = self.pipeline.recalibrations
        return SessionSummary(
            processed=self._processed,
            decode_errors=self.parser.stats()["decode_errors"],
            windows=len(self.pipeline.windows),
            recalibrations=len(recalibrations),
            deviations=self._deviation_count,
            compliance=self.estimator.compliance,
            last_recalibration=recalibrations[-1] if recalibrations else None,
        )

    def _emit_stats(self) -> None:
        stats = self.parser.stats()
        logger.info(
            "processed=%d frames=%d decode_errors=%d compliance=%.5f",
            self._processed,
            stats["frames"],
            stats["decode_errors"],
            self.estimator.compliance,
        )

    def _on_recalibration(self, result: RecalibrationResult) -> None:
        settings = self.config.settings
        try:
            ti, _ = resolve_timing(settings)
            derived = self.estimator.derive_pressure_control(settings.peak_pressure, settings.peep, ti)
        except PreconditionError as exc:
            logger.warning("New compliance %.5f L/cmH2O; cannot derive settings: %s", result.compliance, exc)
            return
        logger.info(
            "New compliance %.5f L/cmH2O -> Vt=%.0f mL Qmax=%.1f L/min tank=%.1f",
            result.compliance,
            derived.tidal_volume,
            derived.max_flow,
            derived.tank_pressure,
        )

    def _deviation_targets(self) -> Optional[TargetSettings]:
        settings = self.config.settings
        try:
            ti, _ = resolve_timing(settings)
            flow = max_flow(settings.tidal_volume, ti) if self.config.mode == "volume" else None
        except PreconditionError as exc:
            logger.debug("Deviation checks disabled: %s", exc)
            return None
        return TargetSettings(
            peak_pressure=settings.peak_pressure,
            peep=settings.peep,
            tidal_volume=settings.tidal_volume,
            max_flow=flow,
            inspiratory_time=ti,
        )

    def _on_sample(self, sample: ConditionedSample) -> None:
        window = sample.window
        if window is None or self._targets is None:
            return
        measured = MeasuredExtremes(
            pressure_max=window.pressure_max,
            pressure_min=window.pressure_min,
            volume_max=window.volume_max,
            flow_max=window.flow_max,
        )
        self.last_deviations = detect_deviations(self._targets, measured, self.estimator.compliance)
        self._deviation_count += len(self.last_deviations)
        for deviation in self.last_deviations:
            level = logging.INFO if deviation.severity == "high" else logging.DEBUG
            logger.log(level, "%s (suggested %s)", deviation.message, deviation.suggested_adjustment)
