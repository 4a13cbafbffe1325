"""
Route registration for the live voice session API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Pull the gateway from app.state
- Read-only avatar feed of the speaking signal
"""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from observability.logger import log_event
from session.gateway import SessionGateway


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    def _gateway() -> SessionGateway:
        return app.state.gateway

    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/session")
    async def session_status() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return _gateway().snapshot()

    @app.post("/session/start")
    async def session_start() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        gateway = _gateway()
        await gateway.start()
        return gateway.snapshot()

    @app.post("/session/stop")
    async def session_stop() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        gateway = _gateway()
        await gateway.stop()
        return gateway.snapshot()

    @app.get("/transcript")
    async def transcript() -> list[dict[str, str]]: # pyright: ignore[reportUnusedFunction]
        return [entry.to_dict() for entry in _gateway().history.entries()]

    @app.websocket("/avatar")
    async def avatar_feed(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()
        await _stream_speaking(ws, _gateway())


async def _stream_speaking(ws: WebSocket, gateway: SessionGateway) -> None:
    """
    Push {"speaking": bool} on connect and on every change.

    Inbound messages are read only to notice the disconnect.
    """
    changes: asyncio.Queue[bool] = asyncio.Queue()
    unsubscribe = gateway.speaking.subscribe(changes.put_nowait)
    receiver = asyncio.create_task(_drain_inbound(ws))

    try:
        await ws.send_json({"speaking": gateway.speaking.value})
        while not receiver.done():
            getter = asyncio.create_task(changes.get())
            done, _ = await asyncio.wait(
                {getter, receiver}, return_when=asyncio.FIRST_COMPLETED
            )
            if getter in done:
                await ws.send_json({"speaking": getter.result()})
            else:
                getter.cancel()

    except WebSocketDisconnect:
        pass

    except Exception as exc:  # pylint: disable=broad-exception-caught
        log_event({
            "event_type": "AVATAR_FEED_ERROR",
            "exception": type(exc).__name__,
            "message": str(exc),
        })

    finally:
        unsubscribe()
        receiver.cancel()


async def _drain_inbound(ws: WebSocket) -> None:
    while True:
        msg = await ws.receive()
        if msg["type"] == "websocket.disconnect":
            return
