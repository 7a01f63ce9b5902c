from typing import Callable, List, Optional, Tuple

import pytest

from tiltsteer.control_types import Keypoint, Pose


class FakeEngine:
    """Records every ``send`` and lets tests fire the load notifications."""

    def __init__(self, fail: bool = False) -> None:
        self.calls: List[Tuple[str, str, object]] = []
        self.load_calls = 0
        self.fail = fail
        self._loaded: List[Callable[[], None]] = []
        self._progress: List[Callable[[float], None]] = []
        self._errors: List[Callable[[str], None]] = []

    def send(self, target: str, command: str, payload: object = None) -> None:
        if self.fail:
            raise RuntimeError("engine unavailable")
        self.calls.append((target, command, payload))

    def load(self) -> None:
        self.load_calls += 1

    def on_loaded(self, callback: Callable[[], None]) -> None:
        self._loaded.append(callback)

    def on_progress(self, callback: Callable[[float], None]) -> None:
        self._progress.append(callback)

    def on_error(self, callback: Callable[[str], None]) -> None:
        self._errors.append(callback)

    def fire_loaded(self) -> None:
        for callback in self._loaded:
            callback()

    def fire_progress(self, fraction: float) -> None:
        for callback in self._progress:
            callback(fraction)

    def fire_error(self, message: str) -> None:
        for callback in self._errors:
            callback(message)


def make_pose(
    left: Tuple[float, float] = (100.0, 200.0),
    right: Tuple[float, float] = (300.0, 200.0),
    nose: Tuple[float, float] = (200.0, 100.0),
    left_score: float = 0.9,
    right_score: float = 0.9,
    nose_score: float = 0.9,
    omit: Optional[str] = None,
) -> Pose:
    """Build a pose with the three tracked landmarks plus an unrelated one.

    The defaults are the neutral pose used across the tests: shoulders 200px
    apart centered at (200, 200), nose 100px above the center.
    """

    keypoints = [
        Keypoint(x=left[0], y=left[1], score=left_score, name="left_shoulder"),
        Keypoint(x=right[0], y=right[1], score=right_score, name="right_shoulder"),
        Keypoint(x=nose[0], y=nose[1], score=nose_score, name="nose"),
        Keypoint(x=150.0, y=400.0, score=0.9, name="left_hip"),
    ]
    keypoints = [kp for kp in keypoints if kp.name != omit]
    return Pose(keypoints=keypoints, score=0.9)


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()
