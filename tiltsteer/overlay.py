"""Debug drawing for the camera preview window.

All helpers draw in place on a BGR frame (NumPy array) with OpenCV and avoid
pygame so they can be used independently of the engine window.
"""

from __future__ import annotations

from typing import Iterable, List, Tuple

import cv2

from tiltsteer.control_types import InputDirection, Landmark, Pose

TEXT_COLOR = (255, 255, 255)
TRACKED_COLOR = (0, 255, 255)
OTHER_COLOR = (255, 200, 0)
ARROW_COLOR = (0, 200, 120)


def draw_panel(frame, x: int, y: int, w: int, h: int, alpha: int = 140) -> None:
    """Blend a semi-transparent black rectangle onto ``frame``."""

    alpha = max(0, min(255, alpha))
    overlay = frame.copy()
    cv2.rectangle(overlay, (x, y), (x + w, y + h), (0, 0, 0), -1)
    cv2.addWeighted(overlay, alpha / 255.0, frame, 1 - alpha / 255.0, 0, frame)


def draw_status_panel(frame, lines: Iterable[str], *, font_scale: float = 0.55, line_height: int = 20) -> None:
    """Render ``lines`` top-left on a translucent panel."""

    text: List[str] = list(lines)
    if not text:
        return
    width = max(cv2.getTextSize(line, cv2.FONT_HERSHEY_SIMPLEX, font_scale, 1)[0][0] for line in text)
    draw_panel(frame, 8, 8, width + 24, line_height * len(text) + 16)
    for idx, line in enumerate(text):
        cv2.putText(
            frame,
            line,
            (20, 8 + line_height * (idx + 1)),
            cv2.FONT_HERSHEY_SIMPLEX,
            font_scale,
            TEXT_COLOR,
            1,
        )


def draw_keypoints(frame, pose: Pose, min_score: float = 0.3) -> None:
    """Mark confident keypoints; the three tracked landmarks are larger."""

    tracked = {landmark.value for landmark in Landmark}
    for kp in pose.keypoints:
        if kp.score <= min_score:
            continue
        center = (int(kp.x), int(kp.y))
        if kp.name in tracked:
            cv2.circle(frame, center, 7, TRACKED_COLOR, -1)
        else:
            cv2.circle(frame, center, 3, OTHER_COLOR, -1)


def direction_endpoint(center: Tuple[int, int], direction: InputDirection, radius: int) -> Tuple[int, int]:
    """Arrow tip for ``direction``; screen y is flipped so up points up."""

    return (int(center[0] + direction.x * radius), int(center[1] - direction.y * radius))


def draw_direction(frame, direction: InputDirection, radius: int = 60) -> None:
    """Draw a joystick-style indicator in the bottom-right corner."""

    height, width = frame.shape[:2]
    center = (width - radius - 16, height - radius - 16)
    cv2.circle(frame, center, radius, TEXT_COLOR, 1)
    if direction.is_neutral:
        cv2.circle(frame, center, 4, ARROW_COLOR, -1)
        return
    cv2.arrowedLine(frame, center, direction_endpoint(center, direction, radius), ARROW_COLOR, 3, tipLength=0.25)
