"""Typed control interface shared by the keyboard path, the pose path and dispatch.

This module centralizes the control data model so that the pygame host, the
OpenCV/MediaPipe vision stack and the dispatcher can evolve independently
while agreeing on one canonical signal: :class:`InputDirection`. It also holds
the read-only pose types produced by the estimator and a tiny two-axis
exponential moving average used to smooth the body-tilt signal.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol


def clamp_unit(value: float) -> float:
    """Clamp ``value`` into ``[-1, 1]``."""

    return max(-1.0, min(1.0, float(value)))


@dataclass(frozen=True)
class InputDirection:
    """Canonical two-axis control signal.

    Both axes live in ``[-1, 1]``; construction clamps out-of-range values so
    no producer can leak a larger magnitude downstream. ``y`` is "up is
    positive" for every source.
    """

    x: float = 0.0
    y: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "x", clamp_unit(self.x))
        object.__setattr__(self, "y", clamp_unit(self.y))

    @classmethod
    def neutral(cls) -> "InputDirection":
        return cls(0.0, 0.0)

    @property
    def is_neutral(self) -> bool:
        return self.x == 0.0 and self.y == 0.0

    def to_payload(self) -> str:
        """Serialize as the JSON object the engine's movement command expects."""

        return json.dumps({"x": self.x, "y": self.y})


class InputSource(enum.Enum):
    """Producers that can feed the dispatcher."""

    KEYBOARD = "keyboard"
    POSE = "pose"


@dataclass(frozen=True)
class DirectionUpdate:
    """Message posted by an input source to the controller queue."""

    source: InputSource
    direction: InputDirection


class Landmark(enum.Enum):
    """Body landmarks the tilt signal is computed from.

    Values are the keypoint names reported by the pose model.
    """

    LEFT_SHOULDER = "left_shoulder"
    RIGHT_SHOULDER = "right_shoulder"
    NOSE = "nose"


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class Keypoint:
    """A single 2D keypoint with confidence ``score`` in ``[0, 1]``."""

    x: float
    y: float
    score: float
    name: Optional[str] = None


@dataclass(frozen=True)
class Pose:
    """One detected body: overall confidence plus its named keypoints."""

    keypoints: List[Keypoint] = field(default_factory=list)
    score: float = 0.0

    def landmarks(self) -> Dict[Landmark, Keypoint]:
        """Resolve the tracked landmarks in a single pass over the keypoints.

        Landmarks missing from the frame are simply absent from the result.
        When the model reports a name twice the first occurrence wins.
        """

        wanted = {landmark.value: landmark for landmark in Landmark}
        found: Dict[Landmark, Keypoint] = {}
        for keypoint in self.keypoints:
            landmark = wanted.get(keypoint.name) if keypoint.name else None
            if landmark is not None and landmark not in found:
                found[landmark] = keypoint
        return found


class EngineBoundary(Protocol):
    """Interface of the embedded engine the dispatcher talks to."""

    def send(self, target: str, command: str, payload: object = None) -> None:  # pragma: no cover - protocol definition
        ...

    def load(self) -> None:  # pragma: no cover - protocol definition
        ...

    def on_loaded(self, callback: Callable[[], None]) -> None:  # pragma: no cover - protocol definition
        ...

    def on_progress(self, callback: Callable[[float], None]) -> None:  # pragma: no cover - protocol definition
        ...

    def on_error(self, callback: Callable[[str], None]) -> None:  # pragma: no cover - protocol definition
        ...


@dataclass
class AxisSmoother:
    """Exponential moving average applied independently to two axes.

    Unlike a lazily seeded EMA, both accumulators start at ``0.0`` so the very
    first sample is blended toward rest; a user who is already tilted when
    detection starts eases in instead of jumping.
    """

    alpha: float
    horizontal: float = 0.0
    vertical: float = 0.0

    def update(self, horizontal: float, vertical: float) -> tuple[float, float]:
        """Blend one raw sample into the accumulators and return them."""

        self.horizontal = self.horizontal * (1 - self.alpha) + horizontal * self.alpha
        self.vertical = self.vertical * (1 - self.alpha) + vertical * self.alpha
        return self.horizontal, self.vertical

    def reset(self) -> None:
        self.horizontal = 0.0
        self.vertical = 0.0
