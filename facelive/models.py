"""
Pydantic data models for detections, UI state and API IO.
"""
from __future__ import annotations
from enum import Enum
from pydantic import BaseModel, Field, field_validator
from typing import Dict, Optional

# Declaration order is the tie-break order for equal scores
EXPRESSIONS = ("neutral", "happy", "sad", "angry", "fearful", "disgusted", "surprised")

EXPRESSION_GLYPHS: Dict[str, str] = {
    "neutral": "😐",
    "happy": "😊",
    "sad": "😞",
    "angry": "😡",
    "fearful": "😱",
    "disgusted": "🤢",
    "surprised": "😲",
}


class SessionState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    IN_FLIGHT = "in_flight"


class Box(BaseModel):
    x: float
    y: float
    width: float
    height: float

    def scaled(self, sx: float, sy: float) -> "Box":
        return Box(x=self.x * sx, y=self.y * sy, width=self.width * sx, height=self.height * sy)


class DetectionResult(BaseModel):
    """One detected face: bounding box in frame pixels + expression scores."""
    box: Box
    expressions: Dict[str, float] = Field(default_factory=dict)

    @field_validator("expressions")
    @classmethod
    def _non_negative(cls, v: Dict[str, float]) -> Dict[str, float]:
        for label, score in v.items():
            if score < 0:
                raise ValueError(f"negative score for {label!r}: {score}")
        return v


class DominantExpression(BaseModel):
    label: str
    glyph: str


# live model


class LiveStatus(BaseModel):
    state: SessionState
    running: bool
    started_at: float | None = None
    expression: Optional[str] = None
    glyph: Optional[str] = None
    scheduler: SchedulerState = SchedulerState.IDLE
    toggle_label: str = "Start Video Feed"
