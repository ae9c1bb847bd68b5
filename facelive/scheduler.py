# facelive/scheduler.py
"""
Periodic detection without overlap.

A timer task fires every `interval` seconds on the event loop. Each tick
either issues exactly one inference for the current frame or is skipped
(no frame yet, or an inference is still in flight). Skipped ticks
are dropped, never queued. Schedulers that share an InFlightGuard (one per
session controller) never overlap either, even across a stop and restart.

Completions are applied only while the scheduler is alive and belong to the
current start() generation; anything else is a stale completion and is
discarded without touching the aggregator or the render target.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence, Set

import numpy as np

from facelive.aggregate import ResultAggregator
from facelive.camera import FrameSource
from facelive.emotion import InferenceService
from facelive.errors import InferenceError, ModelNotLoaded, StaleCompletion
from facelive.models import DetectionResult, SchedulerState
from facelive.visual import OverlayRenderer, RenderTarget

logger = logging.getLogger(__name__)


class InFlightGuard:
    """Busy flag shared by every scheduler that talks to one inference service."""
    def __init__(self):
        self.busy = False


class DetectionScheduler:
    def __init__(self,
                 frame_source: FrameSource,
                 inference: InferenceService,
                 aggregator: ResultAggregator,
                 renderer: OverlayRenderer,
                 target: RenderTarget,
                 interval: float = 0.5,
                 guard: InFlightGuard | None = None):
        self.frame_source = frame_source
        self.inference = inference
        self.aggregator = aggregator
        self.renderer = renderer
        self.target = target
        self.interval = float(interval)
        self.guard = guard or InFlightGuard()

        self.state = SchedulerState.IDLE
        self._alive = False
        self._generation = 0
        self._timer: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

        # counters
        self.ticks = 0
        self.skipped = 0
        self.completed = 0
        self.failed = 0
        self.stale = 0
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def active(self) -> bool:
        return self._alive

    # ---- lifecycle ----
    def start(self) -> None:
        """Arm the timer. Must be called from inside the running event loop."""
        if self._alive:
            return
        self._alive = True
        self._generation += 1
        self.state = SchedulerState.IN_FLIGHT if self._pending else SchedulerState.RUNNING
        self._timer = asyncio.get_running_loop().create_task(self._run_timer())
        logger.debug(f"[scheduler] started interval={self.interval}s gen={self._generation}")

    def stop(self) -> None:
        """Cancel the timer synchronously; pending inferences become stale."""
        if not self._alive:
            return
        self._alive = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.state = SchedulerState.IDLE
        logger.debug(f"[scheduler] stopped ticks={self.ticks} skipped={self.skipped} "
                     f"completed={self.completed} failed={self.failed}")

    async def drain(self) -> None:
        """Wait for in-flight inferences to settle (used on shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _run_timer(self) -> None:
        while self._alive:
            await asyncio.sleep(self.interval)
            if not self._alive:
                break
            self.tick()

    # ---- ticks ----
    def tick(self) -> bool:
        """One timer tick. Returns True when a detection pass was issued."""
        self.ticks += 1
        if not self._alive or self.guard.busy or not self.frame_source.ready:
            self.skipped += 1
            return False

        self.guard.busy = True
        self.state = SchedulerState.IN_FLIGHT
        task = asyncio.get_running_loop().create_task(self._infer(self._generation))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    def _is_current(self, generation: int) -> bool:
        return self._alive and generation == self._generation

    async def _infer(self, generation: int) -> None:
        frame: Optional[np.ndarray] = None
        detections: Optional[Sequence[DetectionResult]] = None
        try:
            # capture reads block for up to a frame period; keep them off the loop
            frame = await asyncio.to_thread(self.frame_source.current_frame)
            if frame is None:
                self.skipped += 1
                return
            if not self._is_current(generation):
                raise StaleCompletion()
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            try:
                detections = await self.inference.detect(frame)
            finally:
                self.in_flight -= 1
        except StaleCompletion:
            self.stale += 1
            logger.debug("[scheduler] session stopped before inference, dropping frame")
            return
        except (ModelNotLoaded, InferenceError) as e:
            self.failed += 1
            logger.warning(f"[scheduler] inference failed, skipping tick: {e}")
            return
        except Exception:
            self.failed += 1
            logger.exception("[scheduler] unexpected inference error, skipping tick")
            return
        finally:
            self.guard.busy = False
            if self._alive:
                self.state = SchedulerState.RUNNING

        try:
            self._apply(frame, detections, generation)
        except StaleCompletion:
            self.stale += 1
            logger.debug("[scheduler] discarded stale completion")

    def _apply(self, frame: np.ndarray, detections: Sequence[DetectionResult], generation: int) -> None:
        if not self._is_current(generation):
            raise StaleCompletion()
        self.aggregator.update(detections)
        fh, fw = frame.shape[:2]
        self.renderer.render(self.target, detections,
                             display_size=self.frame_source.display_size,
                             frame_size=(fw, fh))
        self.completed += 1
