"""Tunable settings with the pipeline's fixed defaults, optionally read from JSON.

Every field has a default so the app runs without a settings file. A missing
or malformed file falls back to defaults rather than stopping the program,
and unknown keys are ignored so older files keep working.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar

LOG = logging.getLogger("tiltsteer.settings")

T = TypeVar("T")


@dataclass(frozen=True)
class SignalSettings:
    smoothing_alpha: float = 0.3
    dead_zone: float = 0.08
    sensitivity: float = 2.0
    tracking_confidence: float = 0.3
    calibration_confidence: float = 0.5
    # Flip the horizontal axis for cameras that are not mirrored.
    mirror: bool = False
    reset_smoothing_on_calibrate: bool = False


@dataclass(frozen=True)
class DispatchSettings:
    delta_threshold: float = 0.05
    command_style: str = "vector"  # vector / discrete
    target: str = "Player"


@dataclass(frozen=True)
class CameraSettings:
    index: int = 0
    width: int = 640
    height: int = 480
    rotate: int = 0  # 0 / 90 / 180 / 270
    flip_x: bool = False
    flip_y: bool = False
    model_complexity: int = 1
    min_detection_confidence: float = 0.5
    min_tracking_confidence: float = 0.5
    show_preview: bool = False


@dataclass(frozen=True)
class AppSettings:
    signal: SignalSettings = field(default_factory=SignalSettings)
    dispatch: DispatchSettings = field(default_factory=DispatchSettings)
    camera: CameraSettings = field(default_factory=CameraSettings)
    # Pause between pose-detection iterations, in seconds.
    frame_interval: float = 0.0
    window_width: int = 960
    window_height: int = 720
    fps: int = 60


def _coerce(value: Any, default: Any) -> Any:
    """Convert ``value`` to the type of ``default``; fall back to ``default``."""

    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return bool(value)
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return default
    try:
        return type(default)(value)
    except (TypeError, ValueError):
        return default


def _section(cls: Type[T], raw: Any) -> T:
    defaults = cls()
    if not isinstance(raw, dict):
        return defaults
    values: Dict[str, Any] = {}
    for f in fields(cls):
        if f.name in raw:
            values[f.name] = _coerce(raw[f.name], getattr(defaults, f.name))
    return replace(defaults, **values)


def _validated(settings: AppSettings) -> AppSettings:
    signal = settings.signal
    if not 0.0 < signal.smoothing_alpha <= 1.0:
        LOG.warning("smoothing_alpha %.3f out of (0, 1]; using default", signal.smoothing_alpha)
        signal = replace(signal, smoothing_alpha=SignalSettings.smoothing_alpha)
    dispatch = settings.dispatch
    if dispatch.command_style not in ("vector", "discrete"):
        LOG.warning("unknown command_style %r; using vector", dispatch.command_style)
        dispatch = replace(dispatch, command_style="vector")
    camera = settings.camera
    if camera.rotate not in (0, 90, 180, 270):
        LOG.warning("unsupported rotate %d; using 0", camera.rotate)
        camera = replace(camera, rotate=0)
    return replace(
        settings,
        signal=signal,
        dispatch=dispatch,
        camera=camera,
        frame_interval=max(0.0, settings.frame_interval),
    )


def load_settings(path: Optional[str | Path] = None) -> AppSettings:
    """Read settings from a JSON file; missing or broken files yield defaults."""

    if path is None:
        return AppSettings()

    p = Path(path).expanduser()
    if not p.exists():
        LOG.info("settings file %s not found; using defaults", p)
        return AppSettings()

    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        LOG.warning("could not read settings %s (%s); using defaults", p, exc)
        return AppSettings()

    if not isinstance(raw, dict):
        return AppSettings()

    defaults = AppSettings()
    return _validated(
        AppSettings(
            signal=_section(SignalSettings, raw.get("signal")),
            dispatch=_section(DispatchSettings, raw.get("dispatch")),
            camera=_section(CameraSettings, raw.get("camera")),
            frame_interval=_coerce(raw.get("frame_interval", defaults.frame_interval), defaults.frame_interval),
            window_width=_coerce(raw.get("window_width", defaults.window_width), defaults.window_width),
            window_height=_coerce(raw.get("window_height", defaults.window_height), defaults.window_height),
            fps=_coerce(raw.get("fps", defaults.fps), defaults.fps),
        )
    )
