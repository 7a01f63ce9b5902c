"""Keyboard direction source: eight held-key flags reduced to one direction.

Each logical direction is reachable through two physical keys (an arrow and a
WASD letter). Physical identifiers follow the DOM ``KeyboardEvent.code``
naming (``ArrowUp``, ``KeyW`` ...) so events from any host can be fed in
after a small translation; :func:`key_id_from_pygame` does that for pygame.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

import pygame

from tiltsteer.control_types import InputDirection

LOG = logging.getLogger("tiltsteer.keyboard")

# Physical key identifier -> (dx, dy). Up is positive on the vertical axis.
KEY_CONTRIBUTIONS: Dict[str, tuple[int, int]] = {
    "ArrowUp": (0, 1),
    "ArrowDown": (0, -1),
    "ArrowLeft": (-1, 0),
    "ArrowRight": (1, 0),
    "KeyW": (0, 1),
    "KeyA": (-1, 0),
    "KeyS": (0, -1),
    "KeyD": (1, 0),
}

_PYGAME_KEYS: Dict[int, str] = {
    pygame.K_UP: "ArrowUp",
    pygame.K_DOWN: "ArrowDown",
    pygame.K_LEFT: "ArrowLeft",
    pygame.K_RIGHT: "ArrowRight",
    pygame.K_w: "KeyW",
    pygame.K_a: "KeyA",
    pygame.K_s: "KeyS",
    pygame.K_d: "KeyD",
}


def key_id_from_pygame(key: int) -> Optional[str]:
    """Translate a pygame key constant to a physical key identifier."""

    return _PYGAME_KEYS.get(key)


def _axis(states: Dict[str, bool], axis: int) -> int:
    # Both keys of one direction count once; opposing directions cancel.
    positive = any(held and KEY_CONTRIBUTIONS[key][axis] > 0 for key, held in states.items())
    negative = any(held and KEY_CONTRIBUTIONS[key][axis] < 0 for key, held in states.items())
    return int(positive) - int(negative)


class KeyStateAggregator:
    """Tracks held movement keys and reports direction changes edge-triggered."""

    def __init__(self, on_change: Optional[Callable[[InputDirection], None]] = None) -> None:
        self._states: Dict[str, bool] = {key: False for key in KEY_CONTRIBUTIONS}
        self._direction = InputDirection.neutral()
        self._on_change = on_change

    def set_key(self, key_id: str, pressed: bool) -> bool:
        """Record a key-down/key-up and recompute the direction.

        Returns ``True`` when ``key_id`` is one of the eight movement keys so
        callers can decide whether to consume the event. Unknown identifiers
        are ignored.
        """

        if key_id not in self._states:
            return False
        self._states[key_id] = bool(pressed)
        self._recompute()
        return True

    def reset(self) -> None:
        """Release every key, e.g. when the window loses focus."""

        for key in self._states:
            self._states[key] = False
        self._recompute()

    def current_direction(self) -> InputDirection:
        return self._direction

    def key_states(self) -> Dict[str, bool]:
        return dict(self._states)

    def _recompute(self) -> None:
        direction = InputDirection(float(_axis(self._states, 0)), float(_axis(self._states, 1)))
        if direction == self._direction:
            return
        self._direction = direction
        LOG.debug("keyboard direction -> (%d, %d)", direction.x, direction.y)
        if self._on_change is not None:
            self._on_change(direction)
