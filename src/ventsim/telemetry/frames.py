from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, Optional

from ..errors import FrameDecodeError

FRAME_TERMINATOR = "?"
FIELD_NAMES = ("pressure", "flow", "volume")

# Longest leading decimal literal, the way a permissive float parser reads it.
_FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


@dataclass(frozen=True)
class Sample:
    pressure: float
    flow: float
    volume: float


def _parse_float_prefix(text: str) -> Optional[float]:
    match = _FLOAT_PREFIX.match(text)
    if match is None:
        return None
    return float(match.group(1))


def _scan(frame: str) -> Dict[str, str]:
    pressure = flow = volume = ""
    in_pressure = in_flow = in_volume = False
    for char in frame:
        if char == "P":
            in_pressure = True
        elif char == "F":
            in_pressure = False
            in_flow = True
        elif char == "V":
            in_flow = False
            in_volume = True
        elif char == FRAME_TERMINATOR:
            in_volume = False

        if in_pressure:
            pressure += char
        if in_flow:
            flow += char
        if in_volume:
            volume += char
    # the first captured character is the field marker itself
    return dict(zip(FIELD_NAMES, (pressure[1:], flow[1:], volume[1:])))


def _parse_field(payload: str) -> Optional[float]:
    try:
        value = float(payload.strip())
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def decode_frame(frame: str, *, strict: bool = True) -> Sample:
    """
    Decode a ``P<float>F<float>V<float>?`` telemetry frame.

    With ``strict`` the frame must end with the terminator and every field
    must be a complete finite number, otherwise :class:`FrameDecodeError` is
    raised. Without it each field is read up to its longest leading number
    and a field with none decodes to ``nan``.
    """
    if strict and not frame.rstrip().endswith(FRAME_TERMINATOR):
        raise FrameDecodeError(frame, None, "missing terminator (truncated frame)")
    values: Dict[str, float] = {}
    for name, payload in _scan(frame).items():
        if strict:
            value = _parse_field(payload)
            if value is None:
                reason = "missing field" if not payload.strip() else f"non-numeric payload {payload!r}"
                raise FrameDecodeError(frame, name, reason)
        else:
            value = _parse_float_prefix(payload)
            if value is None or not math.isfinite(value):
                value = math.nan
        values[name] = value
    return Sample(**values)


def encode_frame(sample: Sample, precision: Optional[int] = None) -> str:
    """Render *sample* in the telemetry grammar; ``repr`` floats round-trip exactly."""

    def fmt(value: float) -> str:
        if not math.isfinite(value):
            raise ValueError(f"Cannot encode non-finite value {value!r}")
        if precision is None:
            return repr(float(value))
        return f"{value:.{precision}f}"

    return f"P{fmt(sample.pressure)}F{fmt(sample.flow)}V{fmt(sample.volume)}{FRAME_TERMINATOR}"


class FrameParser:
    """
    Streaming parser for newline-delimited telemetry frames.
    Undecodable frames are counted and skipped so one corrupt line does not
    stop a session.
    """

    def __init__(self) -> None:
        self._stats: Dict[str, int] = {"frames": 0, "decode_errors": 0}
        self._last_error: Optional[FrameDecodeError] = None
        self._log = logging.getLogger(__name__)

    def parse_lines(self, lines: Iterable[str]) -> Iterator[Sample]:
        for line in lines:
            frame = line.strip()
            if not frame:
                continue
            try:
                sample = decode_frame(frame)
            except FrameDecodeError as exc:
                self._stats["decode_errors"] += 1
                self._last_error = exc
                self._log.debug("Discarding frame: %s", exc)
                continue
            self._stats["frames"] += 1
            yield sample

    @property
    def last_error(self) -> Optional[FrameDecodeError]:
        return self._last_error

    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def reset(self) -> None:
        self._stats = {"frames": 0, "decode_errors": 0}
        self._last_error = None


def iterate_text_stream(handle: Iterable[str]) -> Iterator[str]:
    for line in handle:
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        yield line
