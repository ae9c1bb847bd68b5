# facelive/camera.py
"""
Frame source backed by an OpenCV capture device.

The stream handle is a CaptureStream holding one CaptureTrack per opened
capture. Stopping the source stops every track individually; a track that is
never stopped keeps the camera (and its LED) busy.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

import cv2
import numpy as np

from facelive.config import Settings
from facelive.errors import DeviceUnavailable

logger = logging.getLogger(__name__)


class CaptureTrack:
    """A single video track wrapping one cv2.VideoCapture."""
    def __init__(self, capture, kind: str = "video"):
        self.capture = capture
        self.kind = kind
        self.ended = False

    def read(self) -> Optional[np.ndarray]:
        if self.ended:
            return None
        ok, frame = self.capture.read()
        if not ok or frame is None:
            return None
        return frame

    def stop(self) -> None:
        if self.ended:
            return
        self.capture.release()
        self.ended = True


class CaptureStream:
    def __init__(self, tracks: List[CaptureTrack]):
        self._tracks = list(tracks)

    def get_tracks(self) -> List[CaptureTrack]:
        return list(self._tracks)

    def video_track(self) -> Optional[CaptureTrack]:
        for t in self._tracks:
            if t.kind == "video" and not t.ended:
                return t
        return None


class FrameSource:
    """Live camera with explicit start/stop and a current frame.

    start() may run in a worker thread. close() is a stop that also abandons a
    start still opening the device: the late capture is released instead of
    bound, and the source never starts again. Reads and stops share a lock so
    a capture is never released in the middle of a read.
    """
    def __init__(self, settings: Settings,
                 capture_factory: Callable[[int], object] | None = None):
        self.s = settings
        self._capture_factory = capture_factory or cv2.VideoCapture
        self.stream: Optional[CaptureStream] = None
        self._lock = threading.Lock()
        self._closed = False

    @property
    def display_size(self) -> tuple[int, int]:
        return self.s.display_size

    @property
    def ready(self) -> bool:
        return self.stream is not None

    @property
    def active_tracks(self) -> int:
        if self.stream is None:
            return 0
        return sum(1 for t in self.stream.get_tracks() if not t.ended)

    def start(self) -> None:
        with self._lock:
            if self._closed or self.stream is not None:
                return
        idx = self.s.CAMERA_INDEX
        cap = self._capture_factory(idx)
        if not cap.isOpened():
            cap.release()
            raise DeviceUnavailable(f"Could not open camera index {idx}")

        w, h = self.display_size
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
        with self._lock:
            if self._closed:
                cap.release()
                logger.debug(f"[camera] closed while opening, released capture (index={idx})")
                return
            self.stream = CaptureStream([CaptureTrack(cap)])
        logger.info(f"[camera] Video feed started (index={idx}, display={w}x{h})")

    def stop(self) -> None:
        with self._lock:
            stream, self.stream = self.stream, None
            if stream is None:
                return
            for track in stream.get_tracks():
                track.stop()
        logger.info("[camera] Video feed stopped")

    def close(self) -> None:
        with self._lock:
            self._closed = True
        self.stop()

    def current_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            if self.stream is None:
                return None
            track = self.stream.video_track()
            if track is None:
                return None
            return track.read()
