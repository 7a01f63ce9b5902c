import asyncio
import json
from dataclasses import replace
from typing import List

from conftest import FakeEngine, make_pose
from tiltsteer.calibration import CalibrationState
from tiltsteer.control_types import InputDirection, InputSource, Pose
from tiltsteer.controller import MotionController
from tiltsteer.dispatch import GateState
from tiltsteer.frame_loop import AsyncPoseSource
from tiltsteer.settings import AppSettings, SignalSettings


class ScriptedEstimator:
    def __init__(self, poses: List[Pose]) -> None:
        self.poses = list(poses)
        self.closed = False

    def estimate(self) -> List[Pose]:
        if not self.poses:
            return []
        return [self.poses.pop(0)]

    def close(self) -> None:
        self.closed = True


def directions(engine: FakeEngine) -> List[dict]:
    return [json.loads(call[2]) for call in engine.calls]


def ready(controller: MotionController, engine: FakeEngine) -> None:
    controller.handle_interaction()
    engine.fire_loaded()


def test_first_key_press_starts_engine_once(engine: FakeEngine) -> None:
    controller = MotionController(engine)
    controller.handle_key("ArrowRight", True)
    controller.handle_key("ArrowRight", False)
    controller.handle_key("KeyW", True)
    assert engine.load_calls == 1
    assert controller.gate.state is GateState.INITIALIZING
    # Nothing before the engine is ready, and nothing replayed after.
    engine.fire_loaded()
    assert engine.calls == []

    controller.handle_key("KeyD", True)
    assert directions(engine) == [{"x": 1.0, "y": 1.0}]


def test_mode_switch_forces_neutral(engine: FakeEngine) -> None:
    controller = MotionController(engine)
    ready(controller, engine)

    controller.set_mode(InputSource.KEYBOARD)
    controller.set_mode(InputSource.KEYBOARD)
    assert directions(engine) == [{"x": 0.0, "y": 0.0}] * 2

    controller.handle_key("ArrowLeft", True)
    controller.set_mode(InputSource.POSE)
    assert directions(engine)[-2:] == [{"x": -1.0, "y": 0.0}, {"x": 0.0, "y": 0.0}]
    # Held keys are released so switching back does not resume stale motion.
    assert controller.keys.current_direction().is_neutral


def test_updates_from_inactive_source_are_dropped(engine: FakeEngine) -> None:
    controller = MotionController(engine)
    ready(controller, engine)

    controller.post(InputSource.POSE, InputDirection(1.0, 0.0))
    assert engine.calls == []

    controller.set_mode(InputSource.POSE)
    engine.calls.clear()
    assert controller.handle_key("KeyA", True) is False
    assert engine.calls == []


def test_pose_frames_need_calibration_and_detection(engine: FakeEngine) -> None:
    controller = MotionController(engine)
    ready(controller, engine)
    controller.set_mode(InputSource.POSE)
    engine.calls.clear()
    tilted = make_pose(nose=(400.0, 100.0))

    controller.detecting = True
    controller.handle_pose(tilted)
    assert engine.calls == []
    assert controller.processor.smoother.horizontal == 0.0

    controller.calibration.calibrate(make_pose())
    controller.detecting = False
    controller.handle_pose(tilted)
    assert engine.calls == []

    controller.detecting = True
    controller.handle_pose(tilted)
    assert directions(engine) == [{"x": 0.6, "y": 0.0}]


def test_reentrant_posts_are_queued_in_order(engine: FakeEngine) -> None:
    controller = MotionController(engine)
    ready(controller, engine)
    original_send = engine.send

    def send_and_post(target, command, payload=None):
        original_send(target, command, payload)
        if len(engine.calls) == 1:
            controller.post(InputSource.KEYBOARD, InputDirection(0.0, -1.0))

    engine.send = send_and_post
    controller.post(InputSource.KEYBOARD, InputDirection(1.0, 0.0))
    assert directions(engine) == [{"x": 1.0, "y": 0.0}, {"x": 0.0, "y": -1.0}]


def test_calibrate_uses_next_frame_and_enables_detection(engine: FakeEngine) -> None:
    async def scenario() -> MotionController:
        source = AsyncPoseSource(ScriptedEstimator([make_pose(nose_score=0.4), make_pose()]))
        controller = MotionController(engine, pose_source=source)
        failed = await controller.calibrate()
        assert failed.ok is False
        assert controller.calibration.state is CalibrationState.UNINITIALIZED
        assert controller.detecting is False
        ok = await controller.calibrate()
        assert ok.ok is True
        return controller

    controller = asyncio.run(scenario())
    assert controller.calibration.state is CalibrationState.CALIBRATED
    assert controller.detecting is True


def test_calibrate_without_camera_fails_softly(engine: FakeEngine) -> None:
    controller = MotionController(engine)
    result = asyncio.run(controller.calibrate())
    assert result.ok is False
    assert controller.calibration.reference is None


def _smoothing_after_recalibration(reset: bool) -> float:
    settings = AppSettings(signal=SignalSettings(reset_smoothing_on_calibrate=reset))
    engine = FakeEngine()

    async def scenario() -> MotionController:
        source = AsyncPoseSource(ScriptedEstimator([make_pose(), make_pose()]))
        controller = MotionController(engine, settings, source)
        await controller.calibrate()
        controller.mode = InputSource.POSE
        for _ in range(3):
            controller.handle_pose(make_pose(nose=(300.0, 100.0)))
        await controller.calibrate()
        return controller

    controller = asyncio.run(scenario())
    return controller.processor.smoother.horizontal


def test_smoothing_survives_recalibration_by_default() -> None:
    assert _smoothing_after_recalibration(reset=False) > 0.3


def test_smoothing_can_reset_on_recalibration() -> None:
    assert _smoothing_after_recalibration(reset=True) == 0.0


def test_settings_reach_the_components(engine: FakeEngine) -> None:
    settings = AppSettings()
    settings = replace(settings, dispatch=replace(settings.dispatch, delta_threshold=0.3, command_style="discrete"))
    controller = MotionController(engine, settings)
    assert controller.dispatcher.delta_threshold == 0.3
    ready(controller, engine)
    controller.handle_key("ArrowUp", True)
    assert engine.calls == [("Player", "MoveUp", 1)]
