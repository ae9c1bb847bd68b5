# facelive/live.py
"""
Live session control.

SessionController owns the camera (FrameSource) and the DetectionScheduler
as one start/stop-able unit:

    stopped -> starting -> running -> stopping -> stopped

The scheduler only exists while the session is running. The aggregator
(dominant expression) and the render target outlive sessions so the UI can
keep references to them; both are reset when a new session starts.

This module also provides a desktop preview window (run_live_overlay):
- 't' toggles the video feed
- 'q' quits
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

import cv2
import numpy as np

from facelive.aggregate import ResultAggregator
from facelive.camera import FrameSource
from facelive.config import Settings
from facelive.emotion import DeepFaceInference, InferenceService
from facelive.errors import DeviceUnavailable
from facelive.models import LiveStatus, SchedulerState, SessionState
from facelive.scheduler import DetectionScheduler, InFlightGuard
from facelive.visual import OverlayRenderer, RenderTarget, compose

logger = logging.getLogger(__name__)

WINDOW_TITLE = "Facial Expression Recognition (t: toggle, q: quit)"


class SessionController:
    """Start/stop state machine around one camera + scheduler pair."""
    def __init__(self, settings: Settings,
                 inference: InferenceService,
                 capture_factory: Callable[[int], object] | None = None,
                 aggregator: ResultAggregator | None = None,
                 renderer: OverlayRenderer | None = None,
                 target: RenderTarget | None = None):
        self.s = settings
        self.inference = inference
        self._capture_factory = capture_factory
        self.aggregator = aggregator or ResultAggregator(reset_on_empty=settings.RESET_ON_EMPTY)
        self.renderer = renderer or OverlayRenderer()
        self.target = target or RenderTarget(*settings.display_size)

        self.state = SessionState.STOPPED
        self.frame_source: Optional[FrameSource] = None
        self.scheduler: Optional[DetectionScheduler] = None
        self.started_at: Optional[float] = None
        # shared by every scheduler this session creates, across restarts
        self._guard = InFlightGuard()

    @property
    def running(self) -> bool:
        return self.state == SessionState.RUNNING

    @property
    def toggle_label(self) -> str:
        return "Stop Video Feed" if self.state in (SessionState.RUNNING, SessionState.STARTING) \
            else "Start Video Feed"

    # ---- lifecycle ----
    async def toggle(self) -> SessionState:
        if self.state == SessionState.STOPPED:
            await self._start()
        elif self.state == SessionState.RUNNING:
            await self._stop()
        else:
            logger.debug(f"[session] toggle ignored while {self.state.value}")
        return self.state

    async def start(self) -> SessionState:
        if self.state == SessionState.STOPPED:
            await self._start()
        return self.state

    async def stop(self) -> SessionState:
        if self.state == SessionState.RUNNING:
            await self._stop()
        return self.state

    async def _start(self) -> None:
        self.state = SessionState.STARTING
        logger.debug("[session] starting")

        source = FrameSource(self.s, self._capture_factory)
        try:
            # Models load once; a failure only shows up later as per-tick ModelNotLoaded
            if not self.inference.loaded:
                await asyncio.to_thread(self.inference.ensure_loaded)
            await asyncio.to_thread(source.start)
        except DeviceUnavailable as e:
            self.state = SessionState.STOPPED
            logger.error(f"[session] Error starting video feed: {e}")
            raise
        except Exception:
            source.close()
            self.state = SessionState.STOPPED
            logger.exception("[session] Error starting video feed")
            raise
        except BaseException:
            # cancelled mid-start; close() also releases a capture that opens after this
            source.close()
            self.state = SessionState.STOPPED
            logger.warning("[session] start cancelled, video feed released")
            raise

        self.frame_source = source
        self.aggregator.reset()
        self.target.match_dimensions(*source.display_size)
        self.target.clear()
        self.scheduler = DetectionScheduler(
            frame_source=source,
            inference=self.inference,
            aggregator=self.aggregator,
            renderer=self.renderer,
            target=self.target,
            interval=self.s.DETECT_INTERVAL,
            guard=self._guard,
        )
        self.state = SessionState.RUNNING
        self.scheduler.start()
        self.started_at = time.time()
        logger.info("[session] running")

    async def _stop(self) -> None:
        self.state = SessionState.STOPPING
        logger.debug("[session] stopping")
        if self.scheduler is not None:
            self.scheduler.stop()
            self.scheduler = None
        if self.frame_source is not None:
            self.frame_source.close()
            self.frame_source = None
        self.target.clear()
        self.started_at = None
        self.state = SessionState.STOPPED
        logger.info("[session] stopped")

    # ---- UI views ----
    def status(self) -> LiveStatus:
        cur = self.aggregator.current
        return LiveStatus(
            state=self.state,
            running=self.running,
            started_at=self.started_at,
            expression=cur.label if cur else None,
            glyph=cur.glyph if cur else None,
            scheduler=self.scheduler.state if self.scheduler else SchedulerState.IDLE,
            toggle_label=self.toggle_label,
        )

    async def preview(self) -> Optional[np.ndarray]:
        """Current camera frame with the overlay blended in, or None when stopped."""
        source = self.frame_source
        if source is None:
            return None
        frame = await asyncio.to_thread(source.current_frame)
        if frame is None:
            return None
        return compose(frame, self.target)


# -----------------------------------------------------------------------------
# Desktop preview window
# -----------------------------------------------------------------------------
def _draw_status(img: np.ndarray, session: SessionController) -> np.ndarray:
    cur = session.aggregator.current
    text = f"Current Expression: {cur.label}" if cur else "Current Expression: -"
    cv2.putText(img, text, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (255, 255, 255), 2, cv2.LINE_AA)
    cv2.putText(img, f"[t] {session.toggle_label}", (10, img.shape[0] - 15),
                cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 200, 255), 1, cv2.LINE_AA)
    return img


async def _overlay_loop(session: SessionController, autostart: bool = True) -> None:
    w, h = session.s.display_size
    blank = np.zeros((h, w, 3), dtype=np.uint8)
    if autostart:
        await session.toggle()
    try:
        while True:
            shown = await session.preview() if session.running else None
            if shown is None:
                shown = blank.copy()
            cv2.imshow(WINDOW_TITLE, _draw_status(shown, session))

            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                break
            if key == ord("t"):
                try:
                    await session.toggle()
                except DeviceUnavailable:
                    # already logged; window stays up with the feed stopped
                    pass
            # yield so the scheduler timer and completions can run
            await asyncio.sleep(0.01)
    finally:
        await session.stop()
        cv2.destroyAllWindows()


def run_live_overlay(settings: Settings,
                     camera_index: Optional[int] = None,
                     inference: InferenceService | None = None,
                     autostart: bool = True) -> None:
    """
    Open the camera, detect faces/expressions every DETECT_INTERVAL seconds, and show
    boxes + the dominant expression in a window.

    Raises DeviceUnavailable if the camera cannot be opened on autostart.
    """
    if camera_index is not None:
        settings = settings.model_copy(update={"CAMERA_INDEX": int(camera_index)})
    session = SessionController(settings, inference or DeepFaceInference(settings))
    asyncio.run(_overlay_loop(session, autostart=autostart))
