"""Calibration reference for the body-tilt signal.

A calibration captures the user's neutral pose once, on request: where the
shoulders sit, how wide they are and where the nose is. Tilt is then measured
as the change of the nose-to-shoulder offset relative to that reference.

The store deliberately keeps an existing reference when a recalibration frame
is unusable, so continuous control never goes blind because of one bad frame.
Nothing is written to disk; a reference lives for the session only.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from tiltsteer.control_types import Landmark, Point, Pose
from tiltsteer.errors import CalibrationError

LOG = logging.getLogger("tiltsteer.calibration")

CALIBRATION_MIN_CONFIDENCE = 0.5


@dataclass(frozen=True)
class CalibrationPose:
    """The user's neutral pose, used as the zero point for tilt."""

    shoulder_width: float
    shoulder_center: Point
    nose_position: Point

    @property
    def nose_offset(self) -> Point:
        """Nose position relative to the shoulder center."""

        return Point(
            self.nose_position.x - self.shoulder_center.x,
            self.nose_position.y - self.shoulder_center.y,
        )


class CalibrationState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    CALIBRATING = "calibrating"
    CALIBRATED = "calibrated"


@dataclass(frozen=True)
class CalibrationResult:
    """Outcome of one capture attempt; ``reason`` is set on failure."""

    ok: bool
    pose: Optional[CalibrationPose] = None
    reason: Optional[str] = None


def build_calibration(pose: Optional[Pose], min_confidence: float = CALIBRATION_MIN_CONFIDENCE) -> CalibrationPose:
    """Derive a :class:`CalibrationPose` from one frame or raise ``CalibrationError``.

    All three landmarks must be present with a score strictly above
    ``min_confidence`` and the shoulders must not overlap horizontally.
    """

    if pose is None:
        raise CalibrationError("no pose detected")

    points = pose.landmarks()
    for landmark in Landmark:
        keypoint = points.get(landmark)
        if keypoint is None:
            raise CalibrationError(f"{landmark.value} not detected")
        if keypoint.score <= min_confidence:
            raise CalibrationError(f"{landmark.value} confidence {keypoint.score:.2f} too low")

    left = points[Landmark.LEFT_SHOULDER]
    right = points[Landmark.RIGHT_SHOULDER]
    nose = points[Landmark.NOSE]
    width = abs(right.x - left.x)
    if width <= 0:
        raise CalibrationError("shoulder width is zero")

    return CalibrationPose(
        shoulder_width=width,
        shoulder_center=Point((left.x + right.x) / 2, (left.y + right.y) / 2),
        nose_position=Point(nose.x, nose.y),
    )


class CalibrationStore:
    """Holds the current calibration reference and its capture state machine."""

    def __init__(self, min_confidence: float = CALIBRATION_MIN_CONFIDENCE) -> None:
        self.min_confidence = min_confidence
        self._reference: Optional[CalibrationPose] = None
        self._pending = False
        self._listeners: List[Callable[[CalibrationPose], None]] = []

    @property
    def state(self) -> CalibrationState:
        if self._pending:
            return CalibrationState.CALIBRATING
        if self._reference is not None:
            return CalibrationState.CALIBRATED
        return CalibrationState.UNINITIALIZED

    @property
    def reference(self) -> Optional[CalibrationPose]:
        return self._reference

    @property
    def is_calibrated(self) -> bool:
        return self._reference is not None

    def add_listener(self, listener: Callable[[CalibrationPose], None]) -> None:
        """Register a callback fired after every successful capture."""

        self._listeners.append(listener)

    def begin(self) -> None:
        """Arm the store so the next available frame is used as reference."""

        self._pending = True
        LOG.info("calibration requested; hold a neutral pose")

    def capture(self, pose: Optional[Pose]) -> CalibrationResult:
        """Try to turn ``pose`` into the new reference.

        Failures are reported through the returned result and a warning; the
        previous reference (if any) stays in place.
        """

        self._pending = False
        try:
            reference = build_calibration(pose, self.min_confidence)
        except CalibrationError as exc:
            LOG.warning("calibration failed: %s", exc.reason)
            return CalibrationResult(ok=False, pose=self._reference, reason=exc.reason)

        self._reference = reference
        LOG.info(
            "calibrated: shoulder width %.1f, center (%.1f, %.1f)",
            reference.shoulder_width,
            reference.shoulder_center.x,
            reference.shoulder_center.y,
        )
        for listener in self._listeners:
            listener(reference)
        return CalibrationResult(ok=True, pose=reference)

    def calibrate(self, pose: Optional[Pose]) -> CalibrationResult:
        """Convenience for ``begin()`` followed by ``capture(pose)``."""

        self.begin()
        return self.capture(pose)

    def clear(self) -> None:
        """Drop the reference entirely (session teardown)."""

        self._reference = None
        self._pending = False
