"""Forward direction changes across the engine boundary.

Engine calls are comparatively expensive and the pose source produces tens of
updates per second, so :class:`MotionDispatcher` only forwards a direction
when it differs from the last one actually sent by more than a small delta on
either axis. Nothing is sent until :class:`EngineReadinessGate` reports the
engine as loaded; updates dropped before that are not replayed.
"""

from __future__ import annotations

import enum
import logging
from typing import List, Optional, Tuple

from tiltsteer.control_types import EngineBoundary, InputDirection

LOG = logging.getLogger("tiltsteer.dispatch")

PLAYER_TARGET = "Player"
MOVE_COMMAND = "SetMovementDirection"
DELTA_THRESHOLD = 0.05


class CommandStyle(enum.Enum):
    """Message shape used to express a direction to the engine."""

    VECTOR = "vector"
    DISCRETE = "discrete"


class GateState(enum.Enum):
    NOT_REQUESTED = "not_requested"
    INITIALIZING = "initializing"
    READY = "ready"


class EngineReadinessGate:
    """Tri-state readiness of the engine: requested once, ready once.

    The gate subscribes to the engine's notifications on construction. Load
    errors are only logged; the gate then stays ``INITIALIZING`` for the rest
    of the session.
    """

    def __init__(self, engine: EngineBoundary) -> None:
        self._engine = engine
        self.state = GateState.NOT_REQUESTED
        self.last_error: Optional[str] = None
        self.progress = 0.0
        engine.on_loaded(self.mark_loaded)
        engine.on_progress(self._on_progress)
        engine.on_error(self._on_error)

    @property
    def is_ready(self) -> bool:
        return self.state is GateState.READY

    def request(self) -> bool:
        """Start loading the engine; returns ``True`` only on the first call."""

        if self.state is not GateState.NOT_REQUESTED:
            return False
        self.state = GateState.INITIALIZING
        LOG.info("engine initialization requested")
        try:
            self._engine.load()
        except Exception as exc:
            LOG.exception("engine failed to start loading")
            self._on_error(str(exc))
        return True

    def mark_loaded(self) -> None:
        if self.state is not GateState.INITIALIZING:
            LOG.debug("ignoring loaded notification in state %s", self.state.value)
            return
        self.state = GateState.READY
        LOG.info("engine ready")

    def _on_progress(self, fraction: float) -> None:
        self.progress = float(fraction)
        LOG.debug("engine loading %.0f%%", self.progress * 100)

    def _on_error(self, message: str) -> None:
        self.last_error = message
        LOG.error("engine error: %s", message)


def encode_commands(direction: InputDirection, style: CommandStyle = CommandStyle.VECTOR) -> List[Tuple[str, object]]:
    """Translate ``direction`` into ``(command, payload)`` pairs for the Player.

    The vector style always yields exactly one command. The discrete style
    yields one step command per non-zero axis, so neutral yields none.
    """

    if style is CommandStyle.VECTOR:
        return [(MOVE_COMMAND, direction.to_payload())]

    commands: List[Tuple[str, object]] = []
    if direction.x > 0:
        commands.append(("MoveRight", 1))
    elif direction.x < 0:
        commands.append(("MoveLeft", 1))
    if direction.y > 0:
        commands.append(("MoveUp", 1))
    elif direction.y < 0:
        commands.append(("MoveDown", 1))
    return commands


class MotionDispatcher:
    """Sends significant direction changes to the engine's Player object."""

    def __init__(
        self,
        engine: EngineBoundary,
        gate: EngineReadinessGate,
        delta_threshold: float = DELTA_THRESHOLD,
        style: CommandStyle = CommandStyle.VECTOR,
        target: str = PLAYER_TARGET,
    ) -> None:
        self._engine = engine
        self._gate = gate
        self.delta_threshold = delta_threshold
        self.style = style
        self.target = target
        self._last_sent = InputDirection.neutral()
        self.sent_count = 0
        # Direction whose commands were only partly applied, and how many were.
        self._partial: Optional[Tuple[InputDirection, int]] = None

    @property
    def last_sent(self) -> InputDirection:
        return self._last_sent

    def is_significant(self, direction: InputDirection) -> bool:
        return (
            abs(direction.x - self._last_sent.x) > self.delta_threshold
            or abs(direction.y - self._last_sent.y) > self.delta_threshold
        )

    def submit(self, direction: InputDirection) -> bool:
        """Forward ``direction`` if the engine is ready and the change is large enough.

        Returns ``True`` when the engine was called successfully.
        """

        if not self._gate.is_ready:
            return False
        if not self.is_significant(direction):
            return False
        return self._send(direction)

    def stop(self) -> bool:
        """Force a neutral direction regardless of the delta threshold."""

        if not self._gate.is_ready:
            return False
        return self._send(InputDirection.neutral())

    def _send(self, direction: InputDirection) -> bool:
        commands = encode_commands(direction, self.style)
        applied = 0
        if self._partial is not None and self._partial[0] == direction:
            # The engine already applied the first commands of this direction.
            applied = self._partial[1]
        self._partial = None
        try:
            for command, payload in commands[applied:]:
                self._engine.send(self.target, command, payload)
                applied += 1
        except Exception:
            LOG.exception("failed to send direction (%.2f, %.2f)", direction.x, direction.y)
            if applied:
                self._partial = (direction, applied)
            return False
        self._last_sent = direction
        self.sent_count += 1
        LOG.debug("sent direction (%.2f, %.2f)", direction.x, direction.y)
        return True
