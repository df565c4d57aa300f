"""
Process-wide handle to the running PushServer.

Set at app lifespan start; read by the WebSocket endpoint and API routes.
"""
from __future__ import annotations

from typing import Optional

from topicast.services.server import PushServer

_server: Optional[PushServer] = None


def set_server(server: Optional[PushServer]) -> None:
    global _server
    _server = server


def get_server() -> PushServer:
    if _server is None:
        raise RuntimeError("Push server not initialized")
    return _server
