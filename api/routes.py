"""
REST + WebSocket endpoints for the live session.
"""
import asyncio
import contextlib
import logging

import cv2
from fastapi import APIRouter, HTTPException, Response
from fastapi import WebSocket, WebSocketDisconnect

from facelive.config import Settings
from facelive.emotion import DeepFaceInference
from facelive.errors import DeviceUnavailable
from facelive.live import SessionController
from facelive.models import LiveStatus, SessionState

router = APIRouter()
settings = Settings()
session = SessionController(settings, DeepFaceInference(settings))
logger = logging.getLogger(__name__)


def _expression_payload(value) -> dict:
    return {"expression": value.label if value else None,
            "glyph": value.glyph if value else None}


@router.post("/live/toggle", response_model=LiveStatus)
async def live_toggle():
    """
    Start the video feed if stopped, stop it if running.

    Returns:
        LiveStatus: state after the toggle.

    Raises:
        HTTPException 503: the camera could not be opened.
    """
    try:
        await session.toggle()
    except DeviceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    return session.status()


@router.post("/live/start")
async def live_start():
    if session.state != SessionState.STOPPED:
        return {"status": "already_running"}
    try:
        await session.start()
    except DeviceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"status": "started"}


@router.get("/live/status", response_model=LiveStatus)
async def live_status():
    return session.status()


@router.post("/live/stop")
async def live_stop():
    if session.state != SessionState.RUNNING:
        return {"status": "not_running"}
    await session.stop()
    return {"status": "stopped"}


@router.get("/live/overlay.png")
async def live_overlay():
    """Transparent overlay surface, sized to the camera display."""
    try:
        png = session.target.to_png()
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return Response(content=png, media_type="image/png")


@router.get("/live/frame.jpg")
async def live_frame():
    """Current camera frame with the overlay composited in."""
    frame = await session.preview()
    if frame is None:
        raise HTTPException(status_code=409, detail="Video feed is not running")
    ok, buf = cv2.imencode(".jpg", frame)
    if not ok:
        raise HTTPException(status_code=500, detail="JPEG encoding failed")
    return Response(content=buf.tobytes(), media_type="image/jpeg")


async def _push_expressions(ws: WebSocket, queue: asyncio.Queue) -> None:
    """Forward aggregator changes to one client until it goes away."""
    try:
        while True:
            value = await queue.get()
            await ws.send_json(_expression_payload(value))
    except (WebSocketDisconnect, RuntimeError) as e:
        # RuntimeError: send after the socket was closed
        logger.debug(f"[api] /live/ws push stopped: {e!r}")


@router.websocket("/live/ws")
async def live_ws(ws: WebSocket):
    """
    Push dominant-expression changes to the client.

    The first message is the full status. Sending the text "toggle" starts/stops the feed.
    """
    await ws.accept()
    queue: asyncio.Queue = asyncio.Queue()
    unsubscribe = session.aggregator.subscribe(queue.put_nowait)
    pump = asyncio.create_task(_push_expressions(ws, queue))
    try:
        await ws.send_json(session.status().model_dump(mode="json"))
        while True:
            msg = await ws.receive_text()
            if msg.strip().lower() == "toggle":
                try:
                    await session.toggle()
                except DeviceUnavailable as e:
                    await ws.send_json({"error": "DeviceUnavailable", "detail": str(e)})
                    continue
                await ws.send_json(session.status().model_dump(mode="json"))
    except WebSocketDisconnect:
        logger.debug("[api] /live/ws client disconnected")
    finally:
        unsubscribe()
        pump.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await pump
