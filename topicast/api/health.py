"""Health endpoints: plain probe, liveness and readiness."""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from topicast.api.schemas import HealthOut
from topicast.services.server_state import get_server

router = APIRouter(tags=["health"])
logger = logging.getLogger("topicast.health")


@router.get("/health", response_model=HealthOut)
async def health():
    """Process is up. Does not look at sessions."""
    return HealthOut(status="ok", timestamp=datetime.now(timezone.utc).isoformat())


@router.get("/health/live")
async def liveness():
    """Liveness: process is running. No dependencies checked."""
    return {"status": "ok"}


@router.get("/health/ready")
async def readiness():
    """Readiness: the push server has been initialized by the lifespan."""
    try:
        get_server()
    except RuntimeError as e:
        logger.warning("Readiness check failed: %s", e)
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "errors": ["push_server"]},
        )
    return {"status": "ok"}
