"""
Expression inference with DeepFace.
"""
# facelive/emotion.py
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Dict, List, Optional
import asyncio
import logging
import threading

import numpy as np

from facelive.config import Settings
from facelive.errors import InferenceError, ModelNotLoaded
from facelive.models import Box, DetectionResult, EXPRESSIONS

logger = logging.getLogger(__name__)

# DeepFace label -> display vocabulary
DEEPFACE_LABELS = {
    "angry": "angry",
    "disgust": "disgusted",
    "fear": "fearful",
    "happy": "happy",
    "sad": "sad",
    "surprise": "surprised",
    "neutral": "neutral",
}


class InferenceService(ABC):
    """
    Face detection + expression classification.

    Implementations are loaded once with load() and then queried with
    detect(frame), which is a suspension point for the caller.
    """

    @property
    @abstractmethod
    def loaded(self) -> bool:
        ...

    @abstractmethod
    def load(self) -> None:
        ...

    @abstractmethod
    async def detect(self, frame: np.ndarray) -> List[DetectionResult]:
        ...

    def ensure_loaded(self) -> bool:
        """Load once; log and swallow the failure so ticks report ModelNotLoaded instead."""
        if self.loaded:
            return True
        try:
            self.load()
        except Exception:
            logger.exception("[emotion] Error loading models")
            return False
        return self.loaded


def normalize_expressions(raw: Optional[Dict]) -> Dict[str, float]:
    """Map backend labels into the vocabulary; unknown labels are kept as-is."""
    out: Dict[str, float] = {}
    if not isinstance(raw, dict):
        return out
    for k, v in raw.items():
        try:
            score = float(v)
        except (TypeError, ValueError):
            continue
        label = DEEPFACE_LABELS.get(str(k).lower(), str(k).lower())
        out[label] = max(0.0, score)
    # vocabulary labels first so iteration order is stable
    ordered = {k: out[k] for k in EXPRESSIONS if k in out}
    ordered.update({k: v for k, v in out.items() if k not in ordered})
    return ordered


class DeepFaceInference(InferenceService):
    """DeepFace emotion model, run off the event loop in a worker thread."""
    def __init__(self, settings: Settings):
        self.s = settings
        self._deepface = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._deepface is not None

    def load(self) -> None:
        with self._lock:
            if self._deepface is not None:
                return
            # Lazy import so tests can monkeypatch sys.modules['deepface']
            from deepface import DeepFace
            build = getattr(DeepFace, "build_model", None)
            if callable(build):
                # Warm the emotion weights once; first analyze() would do it otherwise
                try:
                    build(task="facial_attribute", model_name="Emotion")
                except TypeError:
                    build("Emotion")
            self._deepface = DeepFace
            logger.info("[emotion] Models loaded successfully")

    async def detect(self, frame: np.ndarray) -> List[DetectionResult]:
        if self._deepface is None:
            raise ModelNotLoaded("DeepFace models are not loaded")
        return await asyncio.to_thread(self._detect_sync, frame)

    def _detect_sync(self, frame: np.ndarray) -> List[DetectionResult]:
        try:
            result = self._deepface.analyze(
                frame,
                actions=["emotion"],
                enforce_detection=False,
                detector_backend=self.s.DETECTOR_BACKEND,
            )
        except Exception as e:
            raise InferenceError(f"DeepFace.analyze failed: {e}") from e

        # DeepFace returns list[dict] or dict depending on version; normalize to list
        if isinstance(result, dict):
            result = [result]
        detections: List[DetectionResult] = []
        for r in result or []:
            det = self._to_detection(r)
            if det is not None:
                detections.append(det)
        logger.debug(f"[emotion] faces_detected={len(detections)}")
        return detections

    def _to_detection(self, r: Dict) -> Optional[DetectionResult]:
        reg = (r or {}).get("region") or {}
        w = float(reg.get("w", 0) or 0)
        h = float(reg.get("h", 0) or 0)
        if w <= 0 or h <= 0:
            return None
        # With enforce_detection=False, "no face" comes back as the whole frame at confidence 0
        conf = r.get("face_confidence")
        if conf is not None:
            try:
                if float(conf) < self.s.MIN_FACE_CONFIDENCE:
                    return None
            except (TypeError, ValueError):
                pass
        return DetectionResult(
            box=Box(x=float(reg.get("x", 0) or 0), y=float(reg.get("y", 0) or 0), width=w, height=h),
            expressions=normalize_expressions(r.get("emotion")),
        )
