"""
Sensor telemetry handling for the ventilator simulator.

The subpackage exposes the frame decoder, signal conditioning and the session
runner that feeds decoded samples to the compliance estimator. Transport
(serial ports, sockets) stays with the caller; everything here consumes
already-received text lines.
"""

from .frames import FrameParser, Sample, decode_frame, encode_frame, iterate_text_stream
from .processing import (
    ConditionedSample,
    SamplePipeline,
    SignalConditioner,
    WindowStats,
    window_table,
)
from .runner import PRESETS, SessionSummary, VentilatorSession, preset_overrides

__all__ = [
    "FrameParser",
    "Sample",
    "decode_frame",
    "encode_frame",
    "iterate_text_stream",
    "ConditionedSample",
    "SamplePipeline",
    "SignalConditioner",
    "WindowStats",
    "window_table",
    "PRESETS",
    "SessionSummary",
    "VentilatorSession",
    "preset_overrides",
]
