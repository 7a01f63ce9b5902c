"""Cooperative pose-detection loop.

Camera reads and model inference block, so each iteration hands them to a
worker thread with ``asyncio.to_thread`` and awaits the result. That await is
the only suspension point of the pipeline. The next iteration is scheduled
only after the previous one resolves, and a lock shared with one-off captures
(calibration) keeps a single inference in flight at any time.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

from tiltsteer.control_types import Pose

LOG = logging.getLogger("tiltsteer.frame_loop")


class PoseEstimator(Protocol):
    """Blocking pose model: grabs the next ready frame and returns its poses."""

    def estimate(self) -> List[Pose]:  # pragma: no cover - protocol definition
        ...

    def close(self) -> None:  # pragma: no cover - protocol definition
        ...


@dataclass
class DetectionStats:
    """Observed detection rate; recomputed about once per second."""

    fps: float = 0.0
    last_detection_time: float = 0.0
    frame_count: int = 0

    def record(self, now: float) -> None:
        self.frame_count += 1
        elapsed = now - self.last_detection_time
        if elapsed > 1.0:
            self.fps = round(self.frame_count / elapsed)
            self.last_detection_time = now
            self.frame_count = 0


class AsyncPoseSource:
    """Async facade over a blocking :class:`PoseEstimator` with one call in flight."""

    def __init__(self, estimator: PoseEstimator) -> None:
        self.estimator = estimator
        self._lock = asyncio.Lock()

    async def first_pose(self) -> Optional[Pose]:
        """Run one inference and return the first detected pose, if any."""

        async with self._lock:
            poses = await asyncio.to_thread(self.estimator.estimate)
        return poses[0] if poses else None

    def close(self) -> None:
        self.estimator.close()


class PoseFrameLoop:
    """Repeatedly estimates poses and hands the first one to ``on_pose``.

    ``stop()`` prevents any further iteration from being scheduled; an
    inference already running is allowed to finish and its result is dropped.
    """

    def __init__(
        self,
        source: AsyncPoseSource,
        on_pose: Callable[[Pose], None],
        interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.on_pose = on_pose
        self.interval = interval
        self.stats = DetectionStats(last_detection_time=clock())
        self._clock = clock
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Schedule the loop on the running event loop; no-op if already running."""

        if self._running:
            return
        self._running = True
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())
        LOG.info("pose detection started")

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        LOG.info("pose detection stopped")

    async def wait_stopped(self) -> None:
        """Wait until the loop task has observed ``stop()`` and exited."""

        if self._task is not None:
            await self._task

    async def _run(self) -> None:
        while self._running:
            try:
                pose = await self.source.first_pose()
            except Exception:
                # A failed inference only costs this frame.
                LOG.exception("pose estimation failed")
                pose = None
            if not self._running:
                break
            if pose is not None:
                self.on_pose(pose)
                self.stats.record(self._clock())
            # Always yield so a fast estimator cannot starve the event loop.
            await asyncio.sleep(self.interval)
