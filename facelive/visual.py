
"""Overlay rendering.

- RenderTarget: transparent BGRA canvas the UI lays over the live video
- OverlayRenderer: clears the target, then draws one "Face" box + expression scores per detection
- compose: blend a target over a camera frame (preview window / JPEG snapshots)

Boxes arrive in frame pixels and are scaled to the target, whose size always
follows the frame source's display size.
"""
from __future__ import annotations
import cv2
import numpy as np
from typing import List, Optional, Sequence, Tuple

from facelive.models import Box, DetectionResult

# face-api style: #4CAF50 box, black label background at 30% alpha (BGRA)
BOX_COLOR: Tuple[int, int, int, int] = (80, 175, 76, 255)
LABEL_BG: Tuple[int, int, int, int] = (0, 0, 0, 77)
TEXT_COLOR: Tuple[int, int, int, int] = (255, 255, 255, 255)
FONT = cv2.FONT_HERSHEY_SIMPLEX


class RenderTarget:
    """Overlay surface. `drawn` lists the boxes painted in the current pass."""
    def __init__(self, width: int = 0, height: int = 0):
        self.width = 0
        self.height = 0
        self.canvas = np.zeros((0, 0, 4), dtype=np.uint8)
        self.drawn: List[Box] = []
        self.match_dimensions(width, height)

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def match_dimensions(self, width: int, height: int) -> bool:
        """Resize the canvas if needed. Returns True when it changed."""
        width, height = max(0, int(width)), max(0, int(height))
        if (width, height) == (self.width, self.height):
            return False
        self.width, self.height = width, height
        self.canvas = np.zeros((height, width, 4), dtype=np.uint8)
        self.drawn = []
        return True

    def clear(self) -> None:
        self.canvas[:] = 0
        self.drawn = []

    def to_png(self) -> bytes:
        if self.width == 0 or self.height == 0:
            raise ValueError("render target has no pixels yet")
        ok, buf = cv2.imencode(".png", self.canvas)
        if not ok:
            raise RuntimeError("PNG encoding failed")
        return buf.tobytes()


def draw_box(canvas: np.ndarray, box: Box,
             label: str = "Face",
             line_width: int = 4,
             color: Tuple[int, int, int, int] = BOX_COLOR) -> bool:
    """Draw a labelled bounding box, clamped to the canvas.

    Returns False (and draws nothing) when no part of the box is on the canvas.
    """
    h, w = canvas.shape[:2]
    x0 = int(round(max(0.0, min(box.x, w - 1))))
    y0 = int(round(max(0.0, min(box.y, h - 1))))
    x1 = int(round(max(0.0, min(box.x + box.width, w - 1))))
    y1 = int(round(max(0.0, min(box.y + box.height, h - 1))))
    if x1 <= x0 or y1 <= y0:
        return False
    cv2.rectangle(canvas, (x0, y0), (x1, y1), color, line_width, cv2.LINE_8)

    if label:
        (tw, th), base = cv2.getTextSize(label, FONT, 0.6, 1)
        # label sits on the top edge of the box, like face-api's DrawBox
        top = max(0, y0 - th - base - 4)
        cv2.rectangle(canvas, (x0, top), (x0 + tw + 8, top + th + base + 4), LABEL_BG, -1)
        cv2.putText(canvas, label, (x0 + 4, top + th + 2), FONT, 0.6, TEXT_COLOR, 1, cv2.LINE_AA)
    return True


def draw_expressions(canvas: np.ndarray, box: Box, scores: dict,
                     min_confidence: float = 0.1) -> List[str]:
    """Write "label (0.92)" lines under the box for every score above min_confidence.

    Scores are shown highest first. Returns the lines drawn.
    """
    h, w = canvas.shape[:2]
    lines = [f"{k} ({v:.2f})" for k, v in sorted(scores.items(), key=lambda kv: kv[1], reverse=True)
             if v >= min_confidence]
    x = int(round(max(0.0, min(box.x, w - 1))))
    y = int(round(box.y + box.height)) + 4
    for text in lines:
        (tw, th), base = cv2.getTextSize(text, FONT, 0.5, 1)
        if y + th + base > h:
            break
        cv2.rectangle(canvas, (x, y), (x + tw + 6, y + th + base + 4), LABEL_BG, -1)
        cv2.putText(canvas, text, (x + 3, y + th + 2), FONT, 0.5, TEXT_COLOR, 1, cv2.LINE_AA)
        y += th + base + 4
    return lines


class OverlayRenderer:
    def __init__(self, label: str = "Face", line_width: int = 4,
                 color: Tuple[int, int, int, int] = BOX_COLOR,
                 min_confidence: float = 0.1):
        self.label = label
        self.line_width = line_width
        self.color = color
        self.min_confidence = min_confidence

    def render(self, target: RenderTarget,
               detections: Sequence[DetectionResult],
               display_size: Tuple[int, int],
               frame_size: Optional[Tuple[int, int]] = None) -> RenderTarget:
        """Run one draw pass.

        Args:
            target: surface to draw on; resized to display_size first
            detections: faces in frame pixel coordinates
            display_size: (width, height) of the frame source's display
            frame_size: (width, height) of the frame the detections came from;
                None means it already matches display_size

        Returns:
            The same target.
        """
        target.match_dimensions(*display_size)
        target.clear()
        if target.width == 0 or target.height == 0:
            return target

        sx = sy = 1.0
        if frame_size and frame_size[0] > 0 and frame_size[1] > 0:
            sx = target.width / float(frame_size[0])
            sy = target.height / float(frame_size[1])

        for det in detections:
            box = det.box if (sx, sy) == (1.0, 1.0) else det.box.scaled(sx, sy)
            if not draw_box(target.canvas, box, self.label, self.line_width, self.color):
                continue
            draw_expressions(target.canvas, box, det.expressions, self.min_confidence)
            target.drawn.append(box)
        return target


def compose(frame: np.ndarray, target: RenderTarget) -> np.ndarray:
    """Resize a BGR frame to the target and alpha-blend the overlay on top."""
    if target.width == 0 or target.height == 0:
        return frame.copy()
    fh, fw = frame.shape[:2]
    if (fw, fh) != target.size:
        base = cv2.resize(frame, target.size, interpolation=cv2.INTER_AREA)
    else:
        base = frame.copy()
    alpha = target.canvas[:, :, 3:4].astype(np.float32) / 255.0
    over = target.canvas[:, :, :3].astype(np.float32)
    out = base.astype(np.float32) * (1.0 - alpha) + over * alpha
    return out.astype(np.uint8)
