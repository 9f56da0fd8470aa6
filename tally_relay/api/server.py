"""
api/server.py — FastAPI WebSocket tally channel + health + front-end assets.

Browsers connect a WebSocket to `/` (or `/ws`) and receive JSON frames:
  {"message": "<status text>"}   connection status changes
  {"tally": "<name or slot>"}    active input changed
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import PlainTextResponse, Response
from fastapi.websockets import WebSocketState

from tally_relay import __version__
from tally_relay.core import BroadcastHub, LifecycleController

from .assets import AssetStore

log = logging.getLogger(__name__)


class WebSocketTransport:
    """Adapts a FastAPI WebSocket to the hub's subscriber transport."""

    def __init__(self, websocket: WebSocket):
        self._ws = websocket

    def is_ready(self) -> bool:
        return (
            self._ws.client_state == WebSocketState.CONNECTED
            and self._ws.application_state == WebSocketState.CONNECTED
        )

    async def send_text(self, data: str) -> None:
        await self._ws.send_text(data)

    async def close(self, code: int = 1000) -> None:
        if self.is_ready():
            await self._ws.close(code=code)


# ──────────────────────────────────────────────────────────────────────────────
# App factory
# ──────────────────────────────────────────────────────────────────────────────

def create_app(hub: BroadcastHub, controller: LifecycleController, assets: AssetStore) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info(f"tally-relay starting, vMix target {controller.host}:{controller.port}")
        controller.start()
        yield
        await controller.shutdown()
        log.info("tally-relay API shut down.")

    app = FastAPI(
        title="tally-relay",
        description="vMix tally relay for browser shot timers",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.hub = hub
    app.state.controller = controller
    app.state.assets = assets

    # ─────────────────────────────────────────────────────────────────
    # Health
    # ─────────────────────────────────────────────────────────────────

    @app.get("/health", tags=["System"])
    async def health():
        return {
            "status": "ok",
            "switcher_state": controller.state.value,
            "switcher_connected": controller.is_connected(),
            "inputs": controller.directory.as_dict(),
            "ws_clients": hub.count(),
            "version": __version__,
        }

    @app.get("/healthz", tags=["System"])
    async def healthz():
        """Machine-readable health check. Returns 503 until tallies are subscribed."""
        if not controller.is_connected():
            raise HTTPException(
                status_code=503,
                detail={"status": "degraded", "reason": f"vMix {controller.state.value}"},
            )
        return {"status": "ok"}

    # ─────────────────────────────────────────────────────────────────
    # WebSocket tally channel
    # ─────────────────────────────────────────────────────────────────

    async def tally_socket(websocket: WebSocket):
        await websocket.accept()
        try:
            handle = await hub.subscribe(WebSocketTransport(websocket))
        except RuntimeError:
            await websocket.close(code=1001)
            return
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                if message.get("text") is not None:
                    log.debug(f"Received message from client {handle.id}: {message['text']}")
                else:
                    log.debug(f"Ignored binary frame from client {handle.id}")
        except WebSocketDisconnect:
            pass
        finally:
            await hub.unsubscribe(handle)

    app.add_api_websocket_route("/", tally_socket)
    app.add_api_websocket_route("/ws", tally_socket)

    # ─────────────────────────────────────────────────────────────────
    # Front-end assets
    # ─────────────────────────────────────────────────────────────────

    @app.get("/{path:path}", include_in_schema=False)
    async def asset(path: str, request: Request):
        try:
            found = assets.load(request.url.path)
        except OSError as e:
            log.error(f"Cannot read asset {request.url.path}: {e}")
            return PlainTextResponse("Internal Server Error", status_code=500)
        if found is None:
            return PlainTextResponse("Not Found", status_code=404)
        data, content_type = found
        return Response(content=data, media_type=content_type)

    return app
