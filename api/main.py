"""
FastAPI application entrypoint.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api import routes
from api.routes import router

logging.basicConfig(level=getattr(logging, routes.settings.LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # release the camera if the server goes down mid-session
    await routes.session.stop()
    logger.debug("[api] shutdown complete")


app = FastAPI(title="Facial Expression Recognition API", version="1.0.0", lifespan=lifespan)
app.include_router(router)


@app.get("/health")
def health() -> dict:
    """
    Health check endpoint.

    Returns:
        dict: Simple status payload.
    """
    return {"status": "ok"}
