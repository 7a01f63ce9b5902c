"""Turn raw body keypoints into a stable two-axis tilt direction.

The signal is the nose offset from the shoulder midpoint, compared against the
same offset in the calibration reference and divided by the reference
shoulder width. Dividing by shoulder width keeps magnitudes comparable whether
the user sits close to the camera or further away.

Pipeline per frame: confidence gate -> raw tilt -> EMA -> dead zone ->
sensitivity with clamp -> sign convention. The steps are pure arithmetic so
they are easy to test without a camera.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from tiltsteer.calibration import CalibrationPose
from tiltsteer.control_types import AxisSmoother, InputDirection, Landmark, Pose

LOG = logging.getLogger("tiltsteer.pose")

SMOOTHING_ALPHA = 0.3
DEAD_ZONE = 0.08
SENSITIVITY = 2.0
TRACKING_MIN_CONFIDENCE = 0.3


def shape_axis(value: float, dead_zone: float = DEAD_ZONE, sensitivity: float = SENSITIVITY) -> float:
    """Apply the dead zone then scale and clamp one smoothed axis value.

    ``|value| <= dead_zone`` collapses to ``0.0``; anything larger becomes
    ``sign(value) * min(|value| * sensitivity, 1.0)``.
    """

    magnitude = abs(value)
    if magnitude <= dead_zone:
        return 0.0
    return math.copysign(min(magnitude * sensitivity, 1.0), value)


class PoseSignalProcessor:
    """Stateful converter from :class:`Pose` frames to :class:`InputDirection`.

    The only state is the EMA accumulator. It survives recalibration unless the
    owner calls :meth:`reset`.
    """

    def __init__(
        self,
        alpha: float = SMOOTHING_ALPHA,
        dead_zone: float = DEAD_ZONE,
        sensitivity: float = SENSITIVITY,
        min_confidence: float = TRACKING_MIN_CONFIDENCE,
        mirror: bool = False,
    ) -> None:
        self.smoother = AxisSmoother(alpha=alpha)
        self.dead_zone = dead_zone
        self.sensitivity = sensitivity
        self.min_confidence = min_confidence
        self.mirror = mirror
        self.last_output: Optional[InputDirection] = None

    def raw_tilt(self, pose: Pose, calibration: CalibrationPose) -> Optional[tuple[float, float]]:
        """Return image-space ``(horizontal, vertical)`` tilt or ``None``.

        ``None`` means the frame lacks one of the three landmarks or one of
        them is not confident enough.
        """

        points = pose.landmarks()
        if any(
            points.get(landmark) is None or points[landmark].score <= self.min_confidence
            for landmark in Landmark
        ):
            return None

        left = points[Landmark.LEFT_SHOULDER]
        right = points[Landmark.RIGHT_SHOULDER]
        nose = points[Landmark.NOSE]
        offset_x = nose.x - (left.x + right.x) / 2
        offset_y = nose.y - (left.y + right.y) / 2

        reference = calibration.nose_offset
        horizontal = (offset_x - reference.x) / calibration.shoulder_width
        vertical = (offset_y - reference.y) / calibration.shoulder_width
        return horizontal, vertical

    def process(self, pose: Pose, calibration: Optional[CalibrationPose]) -> Optional[InputDirection]:
        """Feed one frame; returns the new direction or ``None`` if skipped."""

        if calibration is None:
            return None

        tilt = self.raw_tilt(pose, calibration)
        if tilt is None:
            LOG.debug("frame skipped: landmarks missing or below %.2f confidence", self.min_confidence)
            return None

        horizontal, vertical = self.smoother.update(*tilt)
        x = shape_axis(horizontal, self.dead_zone, self.sensitivity)
        # Image y grows downward while "up" is positive for every source.
        y = -shape_axis(vertical, self.dead_zone, self.sensitivity)
        if self.mirror:
            x = -x

        # Avoid emitting -0.0 so neutral compares and serializes cleanly.
        direction = InputDirection(x + 0.0, y + 0.0)
        self.last_output = direction
        return direction

    def reset(self) -> None:
        """Forget the smoothing history, e.g. after a fresh calibration."""

        self.smoother.reset()
        self.last_output = None
