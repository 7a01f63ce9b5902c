"""Entry point wiring the engine window, keyboard, camera and controller together."""

from __future__ import annotations

import argparse
import asyncio
import logging
from contextlib import ExitStack
from dataclasses import replace
from typing import List, Optional, Set

import pygame

from tiltsteer.control_types import InputSource
from tiltsteer.controller import MotionController
from tiltsteer.dispatch import GateState
from tiltsteer.engine import PygameEngine
from tiltsteer.errors import EstimatorUnavailableError
from tiltsteer.frame_loop import AsyncPoseSource
from tiltsteer.keyboard import key_id_from_pygame
from tiltsteer.settings import AppSettings, load_settings

LOG = logging.getLogger("tiltsteer")

MODULE_LOGGERS = {
    "keyboard": "tiltsteer.keyboard",
    "calibration": "tiltsteer.calibration",
    "pose": "tiltsteer.pose",
    "dispatch": "tiltsteer.dispatch",
    "engine": "tiltsteer.engine",
    "vision": "tiltsteer.vision",
    "frame_loop": "tiltsteer.frame_loop",
    "controller": "tiltsteer.controller",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Steer a character with the keyboard or by tilting your head.")
    parser.add_argument("--settings", default=None, help="JSON settings file (defaults are used when omitted).")
    parser.add_argument("--no-camera", action="store_true", help="Keyboard only; do not open the camera.")
    parser.add_argument("--camera-index", type=int, default=None, help="OpenCV camera index.")
    parser.add_argument("--mirror", action="store_true", help="Flip the horizontal tilt axis.")
    parser.add_argument("--preview", action="store_true", help="Show the camera preview with keypoints.")
    parser.add_argument(
        "--command-style",
        choices=["vector", "discrete"],
        default=None,
        help="Send SetMovementDirection vectors or legacy MoveUp/MoveDown/... steps.",
    )
    parser.add_argument(
        "--reset-smoothing-on-calibrate",
        action="store_true",
        help="Clear the tilt smoothing history whenever a new calibration is captured.",
    )
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Logging level (default: INFO)")
    parser.add_argument("--log-format", default="%(levelname)s:%(name)s:%(message)s",
                        help="Logging format string")
    parser.add_argument("--debug-modules", nargs="*", default=[],
                        help="Modules to set to DEBUG level (e.g. 'pose', 'dispatch', 'keyboard')")
    return parser


def configure_logging(level: str, fmt: str, debug_modules: List[str]) -> None:
    logging.basicConfig(level=getattr(logging, level), format=fmt)
    for module in debug_modules:
        logging.getLogger(MODULE_LOGGERS.get(module, f"tiltsteer.{module}")).setLevel(logging.DEBUG)


def apply_overrides(settings: AppSettings, args: argparse.Namespace) -> AppSettings:
    """Fold command-line flags into the loaded settings."""

    signal = settings.signal
    if args.mirror:
        signal = replace(signal, mirror=True)
    if args.reset_smoothing_on_calibrate:
        signal = replace(signal, reset_smoothing_on_calibrate=True)
    dispatch = settings.dispatch
    if args.command_style:
        dispatch = replace(dispatch, command_style=args.command_style)
    camera = settings.camera
    if args.camera_index is not None:
        camera = replace(camera, index=args.camera_index)
    if args.preview:
        camera = replace(camera, show_preview=True)
    return replace(settings, signal=signal, dispatch=dispatch, camera=camera)


def open_estimator(settings: AppSettings):
    """Return a camera pose estimator, or ``None`` when it cannot start."""

    try:
        from tiltsteer.vision import MediaPipePoseEstimator

        return MediaPipePoseEstimator(settings.camera)
    except EstimatorUnavailableError as exc:
        LOG.error("pose input unavailable, keyboard only: %s", exc)
        return None


def held_keys(controller: MotionController) -> str:
    held = [key for key, pressed in controller.keys.key_states().items() if pressed]
    return " ".join(held) if held else "none"


def status_lines(controller: MotionController) -> List[str]:
    gate = controller.gate
    direction = controller.dispatcher.last_sent
    engine_line = f"Engine: {gate.state.value}"
    if gate.state is GateState.INITIALIZING:
        engine_line += f" ({gate.progress:.0%})"
    lines = [
        engine_line,
        f"Mode: {controller.mode.value}  (M to switch)",
        f"Calibration: {controller.calibration.state.value}  (C to calibrate)",
        f"Detection: {'on' if controller.detecting else 'off'}  (T to toggle)",
        f"Direction: ({direction.x:+.2f}, {direction.y:+.2f})",
    ]
    if controller.mode is InputSource.KEYBOARD:
        lines.append(f"Keys: {held_keys(controller)}")
    if controller.frame_loop is not None:
        lines.append(f"Detection FPS: {controller.frame_loop.stats.fps:.0f}")
    if gate.last_error:
        lines.append(f"Engine error: {gate.last_error}")
    if gate.state is GateState.NOT_REQUESTED:
        lines.append("Click or press any key to start")
    return lines


async def finish_tasks(pending: Set[asyncio.Task]) -> None:
    """Wait for tasks that remove themselves from ``pending`` when done."""

    await asyncio.gather(*pending)


async def run(settings: AppSettings, use_camera: bool = True) -> None:
    engine = PygameEngine(settings.window_width, settings.window_height)
    engine.open_window()
    clock = pygame.time.Clock()

    with ExitStack() as stack:
        stack.callback(engine.close)
        estimator = open_estimator(settings) if use_camera else None
        pose_source: Optional[AsyncPoseSource] = None
        if estimator is not None:
            pose_source = AsyncPoseSource(estimator)
            stack.callback(pose_source.close)

        controller = MotionController(engine, settings, pose_source)
        stack.callback(controller.shutdown)
        pending: Set[asyncio.Task] = set()

        running = True
        while running:
            dt = clock.tick(settings.fps) / 1000.0
            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    running = False
                elif event.type == pygame.MOUSEBUTTONDOWN:
                    controller.handle_interaction()
                elif event.type == pygame.WINDOWFOCUSLOST:
                    controller.keys.reset()
                elif event.type in (pygame.KEYDOWN, pygame.KEYUP):
                    pressed = event.type == pygame.KEYDOWN
                    key_id = key_id_from_pygame(event.key)
                    if key_id is not None:
                        controller.handle_key(key_id, pressed)
                        continue
                    if not pressed:
                        continue
                    controller.handle_interaction()
                    if event.key == pygame.K_ESCAPE:
                        running = False
                    elif event.key == pygame.K_m:
                        if controller.mode is InputSource.KEYBOARD and pose_source is None:
                            LOG.warning("pose mode needs a camera; staying on keyboard")
                        else:
                            controller.toggle_mode()
                    elif event.key == pygame.K_t:
                        controller.toggle_detection()
                    elif event.key == pygame.K_c:
                        task = asyncio.create_task(controller.calibrate())
                        pending.add(task)
                        task.add_done_callback(pending.discard)

            engine.update(dt)
            lines = status_lines(controller)
            engine.draw(lines)
            if estimator is not None:
                estimator.show_preview(controller.dispatcher.last_sent, lines)
            # Hand control to the frame loop and calibration tasks.
            await asyncio.sleep(0)

        if controller.frame_loop is not None:
            controller.frame_loop.stop()
            await controller.frame_loop.wait_stopped()
        await finish_tasks(pending)


def main() -> None:
    args = build_parser().parse_args()
    configure_logging(args.log_level, args.log_format, args.debug_modules)
    settings = apply_overrides(load_settings(args.settings), args)
    try:
        asyncio.run(run(settings, use_camera=not args.no_camera))
    except KeyboardInterrupt:
        LOG.info("shutdown requested")


if __name__ == "__main__":
    main()
