"""
Read-only server API.

- GET /status: session counts, broadcast state and process uptime
"""
from fastapi import APIRouter

from topicast.api.schemas import StatusOut
from topicast.services.server_state import get_server

router = APIRouter()


@router.get("/status", response_model=StatusOut, summary="Push server status")
async def status():
    """Session counts and broadcast timer state, straight from the push server."""
    return StatusOut(status="running", **get_server().status())
