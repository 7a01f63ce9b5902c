"""Minimal pygame-hosted engine that receives movement commands.

The engine is an external collaborator of the input pipeline: it exposes
``send(target, command, payload)`` plus one-shot load notifications, and owns
everything about the character (speed, bounds, rendering). Game objects are
addressed by name; the only one here is ``Player``.

Commands understood by ``Player``:

* ``SetMovementDirection`` with a JSON ``{"x": .., "y": ..}`` payload sets a
  continuous velocity (``y`` up is positive).
* ``MoveUp`` / ``MoveDown`` / ``MoveLeft`` / ``MoveRight`` step one tile.
* ``ResetExternalInput`` clears any motion.
"""

from __future__ import annotations

import json
import logging
import random
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
import pygame

from tiltsteer.errors import EngineCommandError

LOG = logging.getLogger("tiltsteer.engine")

SCREEN_WIDTH = 960
SCREEN_HEIGHT = 720
PLAYER_SIZE = 48
PLAYER_SPEED = 320  # Pixels per second at full deflection.
STEP_SIZE = PLAYER_SIZE
STAR_COUNT = 140
TRAIL_LENGTH = 14


class Player:
    """The steerable character; position is its center in screen pixels."""

    def __init__(self, bounds: pygame.Rect) -> None:
        self.bounds = bounds
        self.position = pygame.Vector2(bounds.center)
        self.velocity = pygame.Vector2(0, 0)
        self.trail: List[pygame.Vector2] = []

    @property
    def rect(self) -> pygame.Rect:
        rect = pygame.Rect(0, 0, PLAYER_SIZE, PLAYER_SIZE)
        rect.center = (int(self.position.x), int(self.position.y))
        return rect

    def handle(self, command: str, payload: object) -> None:
        if command == "SetMovementDirection":
            x, y = self._parse_direction(payload)
            # Screen y grows downward while the command's y is "up is positive".
            self.velocity.update(x * PLAYER_SPEED, -y * PLAYER_SPEED)
        elif command == "MoveUp":
            self._step(0, -1, payload)
        elif command == "MoveDown":
            self._step(0, 1, payload)
        elif command == "MoveLeft":
            self._step(-1, 0, payload)
        elif command == "MoveRight":
            self._step(1, 0, payload)
        elif command == "ResetExternalInput":
            self.velocity.update(0, 0)
        else:
            raise EngineCommandError(f"Player does not understand {command!r}")

    @staticmethod
    def _parse_direction(payload: object) -> Tuple[float, float]:
        try:
            data = json.loads(payload) if isinstance(payload, str) else payload
            return float(data["x"]), float(data["y"])
        except (TypeError, ValueError, KeyError) as exc:
            raise EngineCommandError(f"invalid movement payload: {payload!r}") from exc

    def _step(self, dx: int, dy: int, payload: object) -> None:
        steps = int(payload) if isinstance(payload, (int, float)) else 1
        self.position += pygame.Vector2(dx, dy) * STEP_SIZE * steps
        self._clamp()

    def update(self, dt: float) -> None:
        if self.velocity.length_squared() > 0:
            self.trail.append(pygame.Vector2(self.position))
            del self.trail[:-TRAIL_LENGTH]
        elif self.trail:
            self.trail.pop(0)
        self.position += self.velocity * dt
        self._clamp()

    def _clamp(self) -> None:
        half = PLAYER_SIZE / 2
        self.position.x = max(self.bounds.left + half, min(self.bounds.right - half, self.position.x))
        self.position.y = max(self.bounds.top + half, min(self.bounds.bottom - half, self.position.y))


class PygameEngine:
    """Hosts the game objects in a pygame window and fires load notifications."""

    def __init__(self, width: int = SCREEN_WIDTH, height: int = SCREEN_HEIGHT, caption: str = "tiltsteer") -> None:
        self.width = width
        self.height = height
        self.caption = caption
        self.objects: Dict[str, Player] = {"Player": Player(pygame.Rect(0, 0, width, height))}
        self.screen: Optional[pygame.Surface] = None
        self.background: Optional[pygame.Surface] = None
        self.font: Optional[pygame.font.Font] = None
        self.loaded = False
        self._loaded_callbacks: List[Callable[[], None]] = []
        self._progress_callbacks: List[Callable[[float], None]] = []
        self._error_callbacks: List[Callable[[str], None]] = []

    def on_loaded(self, callback: Callable[[], None]) -> None:
        self._loaded_callbacks.append(callback)

    def on_progress(self, callback: Callable[[float], None]) -> None:
        self._progress_callbacks.append(callback)

    def on_error(self, callback: Callable[[str], None]) -> None:
        self._error_callbacks.append(callback)

    def open_window(self) -> pygame.Surface:
        """Create the window before loading so the host can show a splash."""

        if self.screen is None:
            pygame.init()
            pygame.display.set_caption(self.caption)
            self.screen = pygame.display.set_mode((self.width, self.height))
            self.font = pygame.font.SysFont("montserrat", 20, bold=True)
        return self.screen

    def load(self) -> None:
        """Build the scene, reporting progress, then fire ``loaded`` once."""

        if self.loaded:
            return
        try:
            self.open_window()
            self._report_progress(0.2)
            self.background = self._build_background()
            self._report_progress(1.0)
        except pygame.error as exc:
            LOG.error("engine failed to load: %s", exc)
            for callback in self._error_callbacks:
                callback(str(exc))
            return
        self.loaded = True
        for callback in self._loaded_callbacks:
            callback()

    def send(self, target: str, command: str, payload: object = None) -> None:
        obj = self.objects.get(target)
        if obj is None:
            raise EngineCommandError(f"no game object named {target!r}")
        LOG.debug("%s.%s(%r)", target, command, payload)
        obj.handle(command, payload)

    def update(self, dt: float) -> None:
        if not self.loaded:
            return
        for obj in self.objects.values():
            obj.update(dt)

    def draw(self, status_lines: List[str]) -> None:
        if self.screen is None:
            return
        if self.background is not None:
            self.screen.blit(self.background, (0, 0))
        else:
            self.screen.fill((8, 8, 16))

        if self.loaded:
            player = self.objects["Player"]
            for idx, point in enumerate(player.trail):
                radius = max(2, int(PLAYER_SIZE * 0.3 * (idx + 1) / TRAIL_LENGTH))
                pygame.draw.circle(self.screen, (90, 140, 220), (int(point.x), int(point.y)), radius)
            pygame.draw.rect(self.screen, (255, 205, 86), player.rect, border_radius=10)

        if self.font is not None:
            for idx, line in enumerate(status_lines):
                text = self.font.render(line, True, (240, 240, 240))
                self.screen.blit(text, (16, 12 + idx * 26))
        pygame.display.flip()

    def _report_progress(self, fraction: float) -> None:
        for callback in self._progress_callbacks:
            callback(fraction)

    def _build_background(self) -> pygame.Surface:
        """Generate a single gradient + star field surface for reuse each frame."""

        surface = pygame.Surface((self.width, self.height))
        top = np.array([18, 24, 48], dtype=float)
        bottom = np.array([8, 8, 16], dtype=float)
        for y in range(self.height):
            t = y / max(1, self.height - 1)
            color = (top * (1 - t) + bottom * t).astype(int)
            pygame.draw.line(surface, color.tolist(), (0, y), (self.width, y))

        for _ in range(STAR_COUNT):
            x = random.randint(0, self.width - 1)
            y = random.randint(0, self.height - 1)
            size = random.choice([1, 1, 2])
            brightness = random.randint(180, 255)
            pygame.draw.rect(surface, (brightness, brightness, 255), pygame.Rect(x, y, size, size))
        return surface

    def close(self) -> None:
        pygame.quit()
