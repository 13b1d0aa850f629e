"""Exception types raised by the ventilation engine."""
from __future__ import annotations

from typing import Optional


class VentsimError(Exception):
    """Base class for engine failures."""


class PreconditionError(VentsimError, ValueError):
    """An input lies outside the domain a calculation is defined on."""


class NonPositiveDivisorError(PreconditionError):
    def __init__(self, name: str, value: float) -> None:
        super().__init__(f"{name} must be positive, got {value!r}")
        self.name = name
        self.value = value


class FrameDecodeError(VentsimError, ValueError):
    """A telemetry frame could not be turned into a sample."""

    def __init__(self, frame: str, field: Optional[str], reason: str) -> None:
        where = f" (field '{field}')" if field else ""
        super().__init__(f"Cannot decode frame {frame!r}{where}: {reason}")
        self.frame = frame
        self.field = field
        self.reason = reason
