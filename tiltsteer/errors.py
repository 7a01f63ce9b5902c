"""Exception types shared across the input pipeline and its collaborators."""

from __future__ import annotations


class TiltsteerError(Exception):
    """Base class for every error raised by tiltsteer."""


class CalibrationError(TiltsteerError):
    """A frame could not be turned into a calibration reference."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class EngineCommandError(TiltsteerError):
    """The engine rejected a command (unknown target, command or payload)."""


class EstimatorUnavailableError(TiltsteerError):
    """The camera or the pose model could not be initialized."""
