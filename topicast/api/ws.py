"""WebSocket endpoint: one push session per connection."""
import json
import logging

from fastapi import WebSocket, WebSocketDisconnect, status

from topicast.services.dispatch import WebSocketTransport
from topicast.services.protocol import SERVER_FULL, make_error_frame
from topicast.services.registry import CapacityExceeded
from topicast.services.server_state import get_server

logger = logging.getLogger("topicast.ws")


async def websocket_endpoint(websocket: WebSocket):
    server = get_server()
    await websocket.accept()
    try:
        session = await server.connect(WebSocketTransport(websocket))
    except CapacityExceeded as exc:
        logger.warning("Connection refused, server full: %s", exc)
        await websocket.send_text(json.dumps(make_error_frame(SERVER_FULL)))
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
        return

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await server.handle_message(session, raw)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("Connection error for %s", session.id)
    finally:
        await server.disconnect(session.id)
