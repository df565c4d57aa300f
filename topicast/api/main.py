"""
FastAPI application for the topic push server.

- WebSocket: WS_PATH (default /): subscribe/unsubscribe, periodic topic frames
- API: /api/status
- Health: /health, /health/live, /health/ready
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from topicast.api.health import router as health_router
from topicast.api.router import router as api_router
from topicast.api.ws import websocket_endpoint
from topicast.core.config import Settings, settings
from topicast.core.log import setup_logging
from topicast.services.feeds import FeedRegistry
from topicast.services.server import PushServer
from topicast.services.server_state import set_server

logger = logging.getLogger("topicast.api")


def create_app(app_settings: Optional[Settings] = None, feeds: Optional[FeedRegistry] = None) -> FastAPI:
    cfg = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(cfg)
        server = PushServer(cfg, feeds=feeds)
        set_server(server)
        logger.info(
            "Push server ready on ws://%s:%d%s (topics: %s, interval %d ms)",
            cfg.HOST,
            cfg.PORT,
            cfg.WS_PATH,
            ", ".join(server.feeds.names()),
            cfg.BROADCAST_INTERVAL,
        )

        yield

        await server.shutdown()
        set_server(None)

    app = FastAPI(
        title="Topic push server",
        description="Periodic synthetic topic frames over WebSocket",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins(),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(health_router)
    app.include_router(api_router, prefix="/api")
    app.add_api_websocket_route(cfg.WS_PATH, websocket_endpoint)

    if cfg.STATIC_DIR and Path(cfg.STATIC_DIR).is_dir():
        app.mount("/", StaticFiles(directory=cfg.STATIC_DIR, html=True), name="static")

    return app


app = create_app()


def main() -> None:
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
