import asyncio
import threading
import time
from typing import List

from conftest import make_pose
from tiltsteer.control_types import Pose
from tiltsteer.frame_loop import AsyncPoseSource, DetectionStats, PoseFrameLoop


class CountingEstimator:
    """Thread-safe fake that tracks how many inferences overlap."""

    def __init__(self, delay: float = 0.005, fail_every: int = 0) -> None:
        self.delay = delay
        self.fail_every = fail_every
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def estimate(self) -> List[Pose]:
        with self._lock:
            self.calls += 1
            call = self.calls
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            time.sleep(self.delay)
            if self.fail_every and call % self.fail_every == 0:
                raise RuntimeError("model hiccup")
            return [make_pose()]
        finally:
            with self._lock:
                self.in_flight -= 1

    def close(self) -> None:
        pass


def test_loop_keeps_one_inference_in_flight() -> None:
    estimator = CountingEstimator()

    async def scenario() -> int:
        source = AsyncPoseSource(estimator)
        seen: List[Pose] = []
        loop = PoseFrameLoop(source, seen.append)
        loop.start()
        loop.start()
        # A concurrent one-off capture shares the same lock.
        await asyncio.gather(source.first_pose(), source.first_pose())
        while len(seen) < 5:
            await asyncio.sleep(0.001)
        loop.stop()
        await loop.wait_stopped()
        return len(seen)

    handled = asyncio.run(scenario())
    assert handled >= 5
    assert estimator.max_in_flight == 1


def test_stop_does_not_deliver_in_flight_result() -> None:
    started = threading.Event()
    release = threading.Event()

    class BlockingEstimator:
        calls = 0

        def estimate(self) -> List[Pose]:
            BlockingEstimator.calls += 1
            started.set()
            release.wait(timeout=2.0)
            return [make_pose()]

        def close(self) -> None:
            pass

    seen: List[Pose] = []

    async def scenario() -> None:
        loop = PoseFrameLoop(AsyncPoseSource(BlockingEstimator()), seen.append)
        loop.start()
        await asyncio.to_thread(started.wait, 2.0)
        loop.stop()
        release.set()
        await loop.wait_stopped()
        assert loop.running is False

    asyncio.run(scenario())
    assert seen == []
    assert BlockingEstimator.calls == 1


def test_estimator_errors_skip_the_frame() -> None:
    estimator = CountingEstimator(delay=0.0, fail_every=2)

    async def scenario() -> int:
        seen: List[Pose] = []
        loop = PoseFrameLoop(AsyncPoseSource(estimator), seen.append)
        loop.start()
        while estimator.calls < 6:
            await asyncio.sleep(0.001)
        loop.stop()
        await loop.wait_stopped()
        return len(seen)

    handled = asyncio.run(scenario())
    assert handled >= 2
    assert handled < estimator.calls


def test_detection_stats_update_about_once_per_second() -> None:
    stats = DetectionStats(last_detection_time=0.0)
    for i in range(1, 31):
        stats.record(i * 0.03)
    assert stats.fps == 0.0
    assert stats.frame_count == 30

    stats.record(1.2)
    assert stats.fps == round(31 / 1.2)
    assert stats.frame_count == 0
    assert stats.last_detection_time == 1.2
