"""Camera + MediaPipe Pose kept separate from the tilt signal logic.

:class:`MediaPipePoseEstimator` is the blocking estimator used by the frame
loop. It owns the ``cv2.VideoCapture`` handle and the MediaPipe graph, and
converts landmarks to pixel-space :class:`Keypoint` objects named like the
COCO keypoints (``nose``, ``left_shoulder`` ...) with visibility as score.
Pixel space matters: normalized MediaPipe coordinates scale x and y by
different frame dimensions, which would skew the vertical tilt.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional, Sequence

import cv2
import numpy as np

from tiltsteer.control_types import InputDirection, Keypoint, Pose
from tiltsteer.errors import EstimatorUnavailableError
from tiltsteer.overlay import draw_direction, draw_keypoints, draw_status_panel
from tiltsteer.settings import CameraSettings

LOG = logging.getLogger("tiltsteer.vision")

# COCO name -> MediaPipe PoseLandmark attribute.
LANDMARK_NAMES = {
    "nose": "NOSE",
    "left_eye": "LEFT_EYE",
    "right_eye": "RIGHT_EYE",
    "left_ear": "LEFT_EAR",
    "right_ear": "RIGHT_EAR",
    "left_shoulder": "LEFT_SHOULDER",
    "right_shoulder": "RIGHT_SHOULDER",
    "left_elbow": "LEFT_ELBOW",
    "right_elbow": "RIGHT_ELBOW",
    "left_wrist": "LEFT_WRIST",
    "right_wrist": "RIGHT_WRIST",
    "left_hip": "LEFT_HIP",
    "right_hip": "RIGHT_HIP",
}


def transform_frame(frame: np.ndarray, rotate: int = 0, flip_x: bool = False, flip_y: bool = False) -> np.ndarray:
    """Rotate/flip the camera frame before inference and preview.

    Transforms happen up front so MediaPipe receives the same view the user
    sees in the preview window.
    """

    transformed = frame
    if rotate == 90:
        transformed = cv2.rotate(transformed, cv2.ROTATE_90_CLOCKWISE)
    elif rotate == 180:
        transformed = cv2.rotate(transformed, cv2.ROTATE_180)
    elif rotate == 270:
        transformed = cv2.rotate(transformed, cv2.ROTATE_90_COUNTERCLOCKWISE)

    if flip_x:
        transformed = cv2.flip(transformed, 1)
    if flip_y:
        transformed = cv2.flip(transformed, 0)
    return transformed


def landmarks_to_pose(landmarks: Sequence, landmark_enum, width: int, height: int) -> Pose:
    """Convert MediaPipe normalized landmarks to a pixel-space :class:`Pose`."""

    keypoints: List[Keypoint] = []
    for name, attr in LANDMARK_NAMES.items():
        lm = landmarks[int(getattr(landmark_enum, attr))]
        keypoints.append(
            Keypoint(
                x=float(lm.x) * width,
                y=float(lm.y) * height,
                score=float(getattr(lm, "visibility", 0.0)),
                name=name,
            )
        )
    score = float(np.mean([kp.score for kp in keypoints])) if keypoints else 0.0
    return Pose(keypoints=keypoints, score=score)


class MediaPipePoseEstimator:
    """Single-person pose estimator over a local camera."""

    def __init__(self, settings: Optional[CameraSettings] = None) -> None:
        self.settings = settings or CameraSettings()
        try:
            from mediapipe import solutions as mp_solutions
        except ImportError as exc:
            raise EstimatorUnavailableError(
                "mediapipe.solutions could not be imported. Install pose support with: pip install 'tiltsteer[pose]'"
            ) from exc

        self._landmark_enum = mp_solutions.pose.PoseLandmark
        self.cap = cv2.VideoCapture(self.settings.index)
        if not self.cap.isOpened():
            raise EstimatorUnavailableError(f"camera {self.settings.index} could not be opened")
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.settings.width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.settings.height)
        self.cap.set(cv2.CAP_PROP_FPS, 30)

        self.pose = mp_solutions.pose.Pose(
            static_image_mode=False,
            model_complexity=int(self.settings.model_complexity),
            enable_segmentation=False,
            smooth_landmarks=True,
            min_detection_confidence=float(self.settings.min_detection_confidence),
            min_tracking_confidence=float(self.settings.min_tracking_confidence),
        )
        # The frame loop writes from a worker thread; the preview reads on the main thread.
        self._frame_lock = threading.Lock()
        self._last_frame: Optional[np.ndarray] = None
        self._last_pose: Optional[Pose] = None
        self.window_name = "tiltsteer camera"
        LOG.info("camera %d opened with MediaPipe Pose", self.settings.index)

    def estimate(self) -> List[Pose]:
        success, frame = self.cap.read()
        if not success:
            LOG.debug("camera returned no frame")
            return []

        frame = transform_frame(frame, self.settings.rotate, self.settings.flip_x, self.settings.flip_y)
        height, width = frame.shape[:2]
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        rgb.flags.writeable = False
        results = self.pose.process(rgb)

        pose: Optional[Pose] = None
        if results is not None and getattr(results, "pose_landmarks", None):
            pose = landmarks_to_pose(results.pose_landmarks.landmark, self._landmark_enum, width, height)

        with self._frame_lock:
            self._last_frame = frame
            self._last_pose = pose
        return [pose] if pose is not None else []

    def show_preview(self, direction: InputDirection, lines: Sequence[str]) -> None:
        """Draw the latest frame with keypoints and status in an OpenCV window."""

        if not self.settings.show_preview:
            return
        with self._frame_lock:
            frame = None if self._last_frame is None else self._last_frame.copy()
            pose = self._last_pose
        if frame is None:
            return
        if pose is not None:
            draw_keypoints(frame, pose)
        draw_direction(frame, direction)
        draw_status_panel(frame, lines)
        cv2.imshow(self.window_name, frame)
        cv2.waitKey(1)

    def close(self) -> None:
        if self.cap.isOpened():
            self.cap.release()
        self.pose.close()
        if self.settings.show_preview:
            cv2.destroyWindow(self.window_name)
