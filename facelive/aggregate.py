"""
Dominant expression selection.

The face of interest is the first detection as returned by the inference
service, not the largest or most central one.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Sequence

from facelive.models import DetectionResult, DominantExpression, EXPRESSIONS, EXPRESSION_GLYPHS

logger = logging.getLogger(__name__)

Listener = Callable[[Optional[DominantExpression]], None]


def glyph_for(label: Optional[str]) -> str:
    return EXPRESSION_GLYPHS.get(label or "", EXPRESSION_GLYPHS["neutral"])


def top_expression(scores: Dict[str, float]) -> Optional[str]:
    """Highest score wins; ties go to the label declared first in EXPRESSIONS."""
    if not scores:
        return None
    ranked = [k for k in EXPRESSIONS if k in scores]
    ranked += [k for k in scores if k not in EXPRESSIONS]
    best, best_score = None, float("-inf")
    for k in ranked:
        if scores[k] > best_score:
            best, best_score = k, scores[k]
    return best


def dominant_expression(detections: Sequence[DetectionResult]) -> Optional[DominantExpression]:
    if not detections:
        return None
    label = top_expression(detections[0].expressions)
    if label is None:
        return None
    return DominantExpression(label=label, glyph=glyph_for(label))


class ResultAggregator:
    """Holds the current dominant expression as an observable value."""
    def __init__(self, reset_on_empty: bool = False):
        self.reset_on_empty = bool(reset_on_empty)
        self.current: Optional[DominantExpression] = None
        self._listeners: List[Listener] = []

    def subscribe(self, fn: Listener) -> Callable[[], None]:
        self._listeners.append(fn)

        def _unsubscribe() -> None:
            if fn in self._listeners:
                self._listeners.remove(fn)
        return _unsubscribe

    def update(self, detections: Sequence[DetectionResult]) -> Optional[DominantExpression]:
        if not detections:
            if self.reset_on_empty:
                self._set(None)
            return self.current
        nxt = dominant_expression(detections)
        if nxt is not None:
            self._set(nxt)
        return self.current

    def reset(self) -> None:
        self._set(None)

    def _set(self, value: Optional[DominantExpression]) -> None:
        if value == self.current:
            return
        self.current = value
        logger.debug(f"[aggregate] dominant={value.label if value else None}")
        for fn in list(self._listeners):
            try:
                fn(value)
            except Exception:
                logger.exception("[aggregate] listener failed")
