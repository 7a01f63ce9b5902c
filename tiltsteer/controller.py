"""Glue between the two input sources, calibration and the dispatcher.

Both sources post :class:`DirectionUpdate` messages to a single queue. One
consumer drains it in arrival order and forwards updates from the active
source only; a post made while draining (for example from a callback fired by
the dispatcher) is appended rather than handled re-entrantly.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Optional

from tiltsteer.calibration import CalibrationPose, CalibrationResult, CalibrationStore
from tiltsteer.control_types import DirectionUpdate, EngineBoundary, InputDirection, InputSource, Pose
from tiltsteer.dispatch import CommandStyle, EngineReadinessGate, MotionDispatcher
from tiltsteer.frame_loop import AsyncPoseSource, PoseFrameLoop
from tiltsteer.keyboard import KeyStateAggregator
from tiltsteer.pose_signal import PoseSignalProcessor
from tiltsteer.settings import AppSettings

LOG = logging.getLogger("tiltsteer.controller")


class MotionController:
    """Owns the pipeline components and the user-facing actions.

    User actions: :meth:`handle_key`, :meth:`handle_interaction` (both also trigger
    engine initialization), :meth:`set_mode`, :meth:`calibrate` and
    :meth:`toggle_detection`.
    """

    def __init__(
        self,
        engine: EngineBoundary,
        settings: Optional[AppSettings] = None,
        pose_source: Optional[AsyncPoseSource] = None,
    ) -> None:
        self.settings = settings or AppSettings()
        signal = self.settings.signal
        dispatch = self.settings.dispatch

        self.gate = EngineReadinessGate(engine)
        self.dispatcher = MotionDispatcher(
            engine,
            self.gate,
            delta_threshold=dispatch.delta_threshold,
            style=CommandStyle(dispatch.command_style),
            target=dispatch.target,
        )
        self.keys = KeyStateAggregator(on_change=lambda d: self.post(InputSource.KEYBOARD, d))
        self.calibration = CalibrationStore(min_confidence=signal.calibration_confidence)
        self.processor = PoseSignalProcessor(
            alpha=signal.smoothing_alpha,
            dead_zone=signal.dead_zone,
            sensitivity=signal.sensitivity,
            min_confidence=signal.tracking_confidence,
            mirror=signal.mirror,
        )
        if signal.reset_smoothing_on_calibrate:
            self.calibration.add_listener(self._reset_smoothing)

        self.pose_source = pose_source
        self.frame_loop: Optional[PoseFrameLoop] = None
        if pose_source is not None:
            self.frame_loop = PoseFrameLoop(pose_source, self.handle_pose, interval=self.settings.frame_interval)

        self.mode = InputSource.KEYBOARD
        self.detecting = False
        self._queue: Deque[DirectionUpdate] = deque()
        self._draining = False

    # -- message queue -------------------------------------------------

    def post(self, source: InputSource, direction: InputDirection) -> None:
        self._queue.append(DirectionUpdate(source, direction))
        self._drain()

    def _drain(self) -> None:
        if self._draining:
            return
        self._draining = True
        try:
            while self._queue:
                update = self._queue.popleft()
                if update.source is not self.mode:
                    continue
                self.dispatcher.submit(update.direction)
        finally:
            self._draining = False

    # -- keyboard ------------------------------------------------------

    def handle_key(self, key_id: str, pressed: bool) -> bool:
        """Apply a key event; returns ``True`` if it was a movement key."""

        if pressed:
            self.gate.request()
        if self.mode is not InputSource.KEYBOARD:
            return False
        return self.keys.set_key(key_id, pressed)

    def handle_interaction(self) -> None:
        """Any click or non-movement key press; starts engine loading once."""

        self.gate.request()

    # -- pose ----------------------------------------------------------

    def handle_pose(self, pose: Pose) -> None:
        """Frame-loop callback: turn one detected pose into a direction update."""

        if not self.detecting or self.mode is not InputSource.POSE:
            return
        reference = self.calibration.reference
        if reference is None:
            return
        direction = self.processor.process(pose, reference)
        if direction is not None:
            self.post(InputSource.POSE, direction)

    async def calibrate(self) -> CalibrationResult:
        """Capture the next available frame as the calibration reference.

        A successful calibration also enables detection, mirroring what a
        user expects after standing still for the camera.
        """

        self.calibration.begin()
        if self.pose_source is None:
            return self.calibration.capture(None)
        try:
            pose = await self.pose_source.first_pose()
        except Exception:
            LOG.exception("pose estimation failed during calibration")
            pose = None
        result = self.calibration.capture(pose)
        if result.ok and not self.detecting:
            self.set_detection(True)
        return result

    def _reset_smoothing(self, _reference: CalibrationPose) -> None:
        LOG.debug("calibration changed; resetting smoothing")
        self.processor.reset()

    def toggle_detection(self) -> bool:
        self.set_detection(not self.detecting)
        return self.detecting

    def set_detection(self, enabled: bool) -> None:
        self.detecting = enabled
        self._sync_frame_loop()

    # -- mode ----------------------------------------------------------

    def set_mode(self, mode: InputSource) -> None:
        """Switch the active source; always forces a neutral dispatch."""

        previous = self.mode
        self.mode = mode
        # Drop whatever the deactivated source still had queued.
        self._queue.clear()
        if mode is not InputSource.KEYBOARD:
            # The release is posted as a keyboard update and dropped as inactive.
            self.keys.reset()
        self.dispatcher.stop()
        self._sync_frame_loop()
        LOG.info("input mode: %s -> %s", previous.value, mode.value)

    def toggle_mode(self) -> InputSource:
        self.set_mode(InputSource.POSE if self.mode is InputSource.KEYBOARD else InputSource.KEYBOARD)
        return self.mode

    def _sync_frame_loop(self) -> None:
        if self.frame_loop is None:
            return
        if self.detecting and self.mode is InputSource.POSE:
            self.frame_loop.start()
        else:
            self.frame_loop.stop()

    def shutdown(self) -> None:
        if self.frame_loop is not None:
            self.frame_loop.stop()
        self.dispatcher.stop()
