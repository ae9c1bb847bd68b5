"""
Configuration for the live expression overlay.
"""
from pydantic import BaseModel
import os


def _env_flag(name: str, default: str = "0") -> bool:
    return (os.getenv(name, default) or "").strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """
    Runtime settings with environment-variable overrides.
    """
    CAMERA_INDEX: int = int(os.getenv("CAMERA_INDEX", "0"))
    DISPLAY_WIDTH: int = int(os.getenv("DISPLAY_WIDTH", "640"))
    DISPLAY_HEIGHT: int = int(os.getenv("DISPLAY_HEIGHT", "480"))

    DETECT_INTERVAL: float = float(os.getenv("DETECT_INTERVAL", "0.5"))
    DETECTOR_BACKEND: str = os.getenv("DETECTOR_BACKEND", "opencv")
    MIN_FACE_CONFIDENCE: float = float(os.getenv("MIN_FACE_CONFIDENCE", "0.5"))
    RESET_ON_EMPTY: bool = _env_flag("RESET_ON_EMPTY")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    def __init__(self, **data):
        super().__init__(**data)
        # floor keeps the timer from spinning
        object.__setattr__(self, "DETECT_INTERVAL", max(0.05, float(self.DETECT_INTERVAL)))
        object.__setattr__(self, "LOG_LEVEL", (self.LOG_LEVEL or "INFO").strip().upper())

    @property
    def display_size(self) -> tuple[int, int]:
        return self.DISPLAY_WIDTH, self.DISPLAY_HEIGHT
