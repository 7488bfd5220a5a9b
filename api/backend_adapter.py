"""
Backend Adapter

Adapts an ASGI application (the FastAPI app in api.main) to the
ServerBackend interface the listener forwards traffic to.
"""

import logging
from typing import Any, Callable, List

from starlette.requests import HTTPConnection, Request
from starlette.websockets import WebSocket

from server_mgmt.backend_loader import ServerBackend

logger = logging.getLogger(__name__)


class AsgiAppBackend(ServerBackend):
    """
    ServerBackend that hands every event to an ASGI application.
    """

    def __init__(self, app: Callable):
        """
        Initialize adapter

        Args:
            app: ASGI application
        """
        self.app = app
        self.server_errors: List[BaseException] = []
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def handle_request(self, request: Request, send: Any) -> None:
        """Run the HTTP request through the application"""
        await self.app(request.scope, request.receive, send)

    async def handle_upgrade(self, request: HTTPConnection, websocket: WebSocket) -> None:
        """Run the websocket session through the application"""
        await self.app(websocket.scope, websocket.receive, websocket.send)

    async def handle_server_error(self, error: BaseException) -> None:
        """Record a listening socket error"""
        logger.error(f"Server error: {error}")
        self.server_errors.append(error)

    def dispose(self) -> None:
        """
        Mark the application as shut down.

        The default application holds no sockets, files or workers of its
        own, so there is nothing to release beyond the flag. The health
        route reports it from then on.
        """
        if self._disposed:
            return
        self._disposed = True
        state = getattr(self.app, "state", None)
        if state is not None:
            state.disposed = True
        logger.info("ASGI backend disposed")
