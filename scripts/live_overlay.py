
"""Run the live camera overlay in a desktop window.

Usage:
    uvicorn api.main:app --reload  # (separate, for API)
    python scripts/live_overlay.py --camera 0 --interval 0.5

Press 't' to toggle the video feed, 'q' to quit the window.
"""
from __future__ import annotations
import argparse
import logging

from facelive.config import Settings
from facelive.live import run_live_overlay


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--camera", type=int, default=None, help="Camera index (default: CAMERA_INDEX)")
    p.add_argument("--interval", type=float, default=None, help="Seconds between detections")
    p.add_argument("--backend", default=None, help="DeepFace detector backend")
    p.add_argument("--no-autostart", action="store_true", help="Wait for 't' before opening the camera")
    args = p.parse_args()

    overrides = {}
    if args.interval is not None:
        overrides["DETECT_INTERVAL"] = args.interval
    if args.backend:
        overrides["DETECTOR_BACKEND"] = args.backend
    s = Settings(**overrides)
    logging.basicConfig(level=getattr(logging, s.LOG_LEVEL, logging.INFO))

    run_live_overlay(s, camera_index=args.camera, autostart=not args.no_autostart)


if __name__ == '__main__':
    main()
