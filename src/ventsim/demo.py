"""Synthetic ventilator telemetry for demos."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import numpy as np
import pandas as pd

from .config import VentilatorConfig
from .telemetry.frames import Sample, encode_frame
from .telemetry.runner import SessionSummary, VentilatorSession
from .validation import resolve_timing

DEMO_COLUMNS = ["time_s", "pressure", "flow", "volume"]

# Uniform noise amplitude per channel (pressure cmH2O, flow L/min, volume mL).
NOISE = (2.0, 5.0, 20.0)

# Share of the inspiratory time spent rising; the rest is the plateau.
RISE_SHARE = 0.75


@dataclass(frozen=True)
class PatientProfile:
    """Lung mechanics of a simulated patient plus the settings of the clinical case."""

    name: str
    description: str
    compliance: float  # L/cmH2O
    pressure_delivery: float  # share of the set driving pressure reaching the airway
    settings: Dict[str, Any] = field(default_factory=dict)
    mode: str = "volume"


PATIENT_PROFILES: Dict[str, PatientProfile] = {
    "pneumonia": PatientProfile(
        name="pneumonia",
        description="Severe pneumonia with hypoxaemia, bilateral consolidation",
        compliance=0.03,
        pressure_delivery=0.9,
        settings={
            "frequency": 20,
            "tidal_volume": 420,
            "fio2": 100,
            "peep": 8,
            "peak_pressure": 30,
            "ie_ratio_slider": 10,
        },
    ),
    "copd": PatientProfile(
        name="copd",
        description="Decompensated COPD with hypercapnia and airway obstruction",
        compliance=0.05,
        pressure_delivery=0.8,
        settings={
            "frequency": 12,
            "tidal_volume": 480,
            "fio2": 35,
            "peep": 5,
            "peak_pressure": 30,
            "ie_ratio_slider": 30,
        },
    ),
    "ards-sepsis": PatientProfile(
        name="ards-sepsis",
        description="ARDS secondary to abdominal sepsis, stiff lungs",
        compliance=0.025,
        pressure_delivery=0.95,
        settings={
            "frequency": 22,
            "tidal_volume": 420,
            "fio2": 90,
            "peep": 11,
            "peak_pressure": 35,
            "ie_ratio_slider": 10,
        },
    ),
}


def profile_overrides(profile: str) -> List[str]:
    """Config overrides that reproduce the ventilator settings of a clinical case."""

    data = PATIENT_PROFILES[profile]
    overrides = [f"mode={data.mode}", "settings.inspiratory_time=null"]
    overrides.extend(f"settings.{key}={value}" for key, value in data.settings.items())
    return overrides


def breath_template(
    config: VentilatorConfig, profile: PatientProfile, samples: int
) -> np.ndarray:
    """
    One noiseless breath as an ``(samples, 3)`` array of pressure, flow and volume.

    In volume control the set tidal volume is delivered and the airway pressure
    follows from the patient's compliance. In pressure control only part of the
    set driving pressure reaches the airway and the volume follows from it.
    """
    settings = config.settings
    ti, te = resolve_timing(settings)
    insp_share = ti / (ti + te)
    rise_end = RISE_SHARE * insp_share

    if config.mode == "volume":
        volume_ml = settings.tidal_volume
        driving = (volume_ml / 1000) / profile.compliance
    else:
        driving = (settings.peak_pressure - settings.peep) * profile.pressure_delivery
        volume_ml = profile.compliance * driving * 1000

    # half-sine flow profiles that integrate to the delivered volume
    insp_flow = (volume_ml / 1000) / (rise_end * (ti + te)) * 60 * math.pi / 2
    exp_flow = (volume_ml / 1000) / ((1 - insp_share) * (ti + te)) * 60 * math.pi / 2

    phase = np.arange(samples) / samples
    rise = np.clip(phase / rise_end, 0.0, 1.0)
    fall = np.clip((phase - insp_share) / (1 - insp_share), 0.0, 1.0)
    rising = phase < rise_end
    expiring = phase >= insp_share

    shape = np.where(
        rising,
        np.sin(rise * np.pi / 2),
        np.where(expiring, 1 - np.sin(fall * np.pi / 2), 1.0),
    )
    pressure = settings.peep + driving * shape
    volume = volume_ml * np.where(expiring, np.cos(fall * np.pi / 2), shape)
    flow = np.where(
        rising,
        insp_flow * np.sin(rise * np.pi),
        np.where(expiring, -exp_flow * np.sin(fall * np.pi), 0.0),
    )
    return np.column_stack([pressure, flow, volume])


def create_demo_dataset(
    config: VentilatorConfig,
    profile: PatientProfile,
    breaths: int = 30,
    samples_per_breath: Optional[int] = None,
    seed: int = 42,
) -> pd.DataFrame:
    """Noisy telemetry for *breaths* consecutive breaths.

    By default one breath spans one conditioning window, so every window sees
    a full pressure swing.
    """
    if breaths < 1:
        raise ValueError("breaths must be at least 1")
    samples = samples_per_breath or config.filters.window_size
    rng = np.random.default_rng(seed)
    ti, te = resolve_timing(config.settings)

    template = breath_template(config, profile, samples)
    data = np.tile(template, (breaths, 1))
    data += rng.uniform(-0.5, 0.5, size=data.shape) * np.asarray(NOISE)
    data[:, 0] = np.maximum(data[:, 0], 0.0)
    data[:, 2] = np.maximum(data[:, 2], 0.0)

    time_s = np.arange(breaths * samples) * (ti + te) / samples
    frame = pd.DataFrame(data, columns=DEMO_COLUMNS[1:])
    frame.insert(0, "time_s", time_s)
    return frame


def demo_frames(dataset: pd.DataFrame, precision: int = 2) -> Iterator[str]:
    for row in dataset.itertuples(index=False):
        yield encode_frame(Sample(row.pressure, row.flow, row.volume), precision=precision)


def run_demo(
    config: VentilatorConfig,
    profile: PatientProfile,
    breaths: int = 30,
    seed: int = 42,
    out_path: Optional[Path] = None,
) -> SessionSummary:
    """Replay a synthetic recording through a fresh session.

    With *out_path* the generated frames are also written there, one per line.
    """
    dataset = create_demo_dataset(config, profile, breaths=breaths, seed=seed)
    frames = list(demo_frames(dataset))
    if out_path is not None:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text("\n".join(frames) + "\n", encoding="utf-8")
    session = VentilatorSession(config)
    return session.run(frames)
