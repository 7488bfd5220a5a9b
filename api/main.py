"""
Agent Host Server - Default Backend

FastAPI application served behind the listener. The listener imports this
module lazily and calls ``create_server(address)`` once it is bound; in
management CLI mode it calls ``spawn_cli(argv)`` instead.
"""

import time
import logging
from typing import Any, List, Optional

from fastapi import FastAPI

from core.config import SERVER_VERSION
from .backend_adapter import AsgiAppBackend
from .constants import APIPrefix
from .management import spawn_cli
from .routes import echo, health

logger = logging.getLogger(__name__)


def create_app(address: Optional[Any] = None) -> FastAPI:
    """
    Create the FastAPI application

    Args:
        address: Address the listener is bound to

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="Agent Host Server",
        description="Default backend of the agent host server.",
        version=SERVER_VERSION,
        openapi_tags=[
            {
                "name": "health",
                "description": "Health check and server status"
            },
            {
                "name": "echo",
                "description": "Websocket echo for connectivity checks"
            },
        ],
    )

    app.state.listen_address = str(address) if address is not None else None
    app.state.started_at = time.time()
    app.state.disposed = False

    app.include_router(health.router, prefix=APIPrefix.V1.value, tags=["health"])
    app.include_router(echo.router, prefix=APIPrefix.V1.value, tags=["echo"])

    return app


async def create_server(address: Optional[Any] = None) -> AsgiAppBackend:
    """
    Build the backend for a bound listener

    Args:
        address: Address the listener is bound to

    Returns:
        Backend wrapping the FastAPI app
    """
    logger.info(f"Creating default backend for {address}")
    return AsgiAppBackend(create_app(address))


__all__: List[str] = ["create_app", "create_server", "spawn_cli"]
