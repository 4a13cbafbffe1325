"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Initialize shared resources (the process-wide SessionGateway)
- Register routes
- Tear the active call down on shutdown
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AppConfig
from observability.logger import log_event
from session.gateway import SessionGateway

from server.routes import register_routes


def create_app(
    config: AppConfig | None = None,
    gateway: SessionGateway | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with an injected gateway (fake devices and channel)
    - Environment-specific setup
    - ASGI server compatibility
    """
    config = config or AppConfig.load_from_env()
    gateway = gateway or SessionGateway(config=config)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        log_event({"event_type": "APP_STARTED", "env": config.env, "model": config.live_model})
        try:
            yield
        finally:
            await gateway.shutdown()
            log_event({"event_type": "APP_STOPPED"})

    app = FastAPI(title="Live Voice Session API", lifespan=lifespan)

    app.state.config = config
    app.state.gateway = gateway

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app
