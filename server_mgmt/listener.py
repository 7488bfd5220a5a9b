"""
Listener for the agent host server.

Owns the listening socket. The socket is bound before the backend
exists; every inbound event waits for the shared backend future and is
then forwarded to it:
- HTTP request -> handle_request(request, send)
- Websocket upgrade -> handle_upgrade(request, websocket)
- Listening socket error -> handle_server_error(error)

The transport (HTTP parsing, websocket handshake) is uvicorn's; the
listener passes it the pre-bound socket so binding stays under its
control.
"""

import os
import socket
import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
from dataclasses import dataclass, field

import uvicorn
from starlette.requests import HTTPConnection, Request
from starlette.websockets import WebSocket

from core.config import DEFAULT_FALLBACK_PORT, LOG_LEVEL, SHUTDOWN_DRAIN_TIMEOUT
from core.network import get_external_ipv4_addresses
from core.performance_tracker import StartupMark, StartupTimeline
from .backend_loader import BackendLoader, ServerBackend
from .port_manager import PortResolver


logger = logging.getLogger(__name__)

# External tooling waits for this line on stdout. Do not change it.
READY_MESSAGE = "Extension host agent listening on"


class ListenerState(str, Enum):
    """Listener lifecycle states"""
    INIT = "init"
    RESOLVING_PORT = "resolving_port"
    BINDING = "binding"
    LISTENING = "listening"
    CLOSED = "closed"
    FAILED = "failed"


@dataclass(frozen=True)
class ListenAddress:
    """
    Address the listener is bound to.

    Exactly one form is set: a Unix domain socket path, or host and port.
    """
    socket_path: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None

    @property
    def is_socket_path(self) -> bool:
        return self.socket_path is not None

    def __str__(self) -> str:
        if self.socket_path is not None:
            return self.socket_path
        return str(self.port)


@dataclass
class ListenOptions:
    """
    Listening options taken from the command line.

    Attributes:
        socket_path: Unix domain socket path (takes precedence over host/port)
        host: Interface to bind; None binds all interfaces
        port: ``--port`` value, an exact port or a range
        pick_port: ``--pick-port`` range
        print_ip_address: Print external IPv4 addresses when ready
        greeting: Lines printed before the readiness line
        fallback_port: Port used when resolution finds nothing better
        log_level: Log level name for the transport
    """
    socket_path: Optional[str] = None
    host: Optional[str] = None
    port: Optional[str] = None
    pick_port: Optional[str] = None
    print_ip_address: bool = False
    greeting: List[str] = field(default_factory=list)
    fallback_port: int = DEFAULT_FALLBACK_PORT
    log_level: str = LOG_LEVEL


@dataclass
class ListenerContext:
    """
    Mutable state of one listener, shared with its event handlers.

    Attributes:
        state: Current lifecycle state
        socket: Bound listening socket
        address: Address the socket is bound to
        timeline: Startup milestones (first request, first websocket, ...)
    """
    state: ListenerState = ListenerState.INIT
    socket: Optional["socket.socket"] = None
    address: Optional[ListenAddress] = None
    timeline: StartupTimeline = field(default_factory=StartupTimeline)


class Listener:
    """
    Accepts connections and forwards them to a lazily built backend.

    Example:
        listener = Listener(options, lambda address: load_backend("api.main", address))
        await listener.run()
    """

    def __init__(
        self,
        options: ListenOptions,
        backend_factory: Callable[[Optional[ListenAddress]], Awaitable[ServerBackend]],
        resolver: Optional[PortResolver] = None,
        timeline: Optional[StartupTimeline] = None
    ):
        """
        Initialize listener.

        Args:
            options: Listening options
            backend_factory: Builds the backend for the bound address
            resolver: Port resolver (defaults to one using the fallback port)
            timeline: Startup timeline to record milestones on
        """
        self.options = options
        self.context = ListenerContext(timeline=timeline or StartupTimeline())
        self.loader = BackendLoader(lambda: backend_factory(self.context.address))

        self._resolver = resolver or PortResolver(fallback_port=options.fallback_port)
        self._server: Optional[uvicorn.Server] = None
        self._warmup: Optional[asyncio.Future] = None
        self._tasks: Set[asyncio.Task] = set()
        self._previous_handler: Optional[Callable] = None
        self._owns_socket_file = False

    @property
    def state(self) -> ListenerState:
        return self.context.state

    @property
    def address(self) -> Optional[ListenAddress]:
        return self.context.address

    async def run(self) -> None:
        """Bind, then serve until the transport stops"""
        await self.start()
        await self.serve()

    async def start(self) -> ListenAddress:
        """
        Resolve the port, bind the socket and announce readiness.

        Kicks off backend construction right after binding so the first
        real request does not pay for it.

        Returns:
            Bound address

        Raises:
            RuntimeError: If resolution or binding fails
        """
        if self.state != ListenerState.INIT:
            raise RuntimeError(f"Cannot start listener in state {self.state.value}")

        try:
            self.context.socket = await self._bind()
            self.context.address = self._bound_address(self.context.socket)
        except Exception as e:
            logger.error(f"Failed to listen: {e}")
            self._set_state(ListenerState.FAILED)
            self._close_socket()
            raise RuntimeError(f"Failed to listen: {e}") from e

        self._set_state(ListenerState.LISTENING)
        self._announce()
        self.context.timeline.mark(StartupMark.STARTED)

        self._warmup = self.loader.get_backend()
        self._warmup.add_done_callback(self._on_warmup_done)
        return self.context.address

    async def serve(self) -> None:
        """
        Serve the bound socket until the transport is told to exit.

        Raises:
            RuntimeError: If the listener is not listening
        """
        if self.state != ListenerState.LISTENING:
            raise RuntimeError(f"Cannot serve in state {self.state.value}")

        loop = asyncio.get_running_loop()
        self._previous_handler = loop.get_exception_handler()
        loop.set_exception_handler(self._handle_loop_exception)

        config = uvicorn.Config(
            self,
            interface="asgi3",
            lifespan="off",
            log_config=None,
            log_level=self.options.log_level.lower(),
            timeout_graceful_shutdown=SHUTDOWN_DRAIN_TIMEOUT,
        )
        self._server = uvicorn.Server(config)

        try:
            await self._server.serve(sockets=[self.context.socket])
        except OSError as e:
            logger.error(f"Listening socket error: {e}")
            await self._forward_server_error(e)
        finally:
            loop.set_exception_handler(self._previous_handler)
            self._previous_handler = None

    @property
    def serving(self) -> bool:
        """True once the transport accepts connections"""
        return self._server is not None and self._server.started

    def stop(self) -> None:
        """Ask the transport to stop serving; serve() returns once it has"""
        if self._server is not None:
            self._server.should_exit = True

    def close(self) -> None:
        """
        Close the listening socket.

        Called after the event loop finished; in-flight connections are
        dropped, not drained.
        """
        if self.state == ListenerState.CLOSED:
            return

        self._close_socket()

        if self._owns_socket_file and self.options.socket_path:
            try:
                os.unlink(self.options.socket_path)
            except FileNotFoundError:
                pass
            self._owns_socket_file = False

        if self.state != ListenerState.FAILED:
            self._set_state(ListenerState.CLOSED)

    async def __call__(self, scope: Dict[str, Any], receive: Callable, send: Callable) -> None:
        """ASGI entry point for every connection the transport accepts"""
        scope_type = scope["type"]
        if scope_type == "http":
            await self._on_request(Request(scope, receive), send)
        elif scope_type == "websocket":
            await self._on_upgrade(HTTPConnection(scope), WebSocket(scope, receive, send))
        else:
            logger.warning(f"Ignoring unsupported ASGI scope type {scope_type!r}")

    async def _on_request(self, request: Request, send: Callable) -> None:
        self.context.timeline.mark(StartupMark.FIRST_REQUEST)
        backend = await self._wait_for_backend()
        await backend.handle_request(request, send)

    async def _on_upgrade(self, request: HTTPConnection, websocket: WebSocket) -> None:
        self.context.timeline.mark(StartupMark.FIRST_WEBSOCKET)
        backend = await self._wait_for_backend()
        await backend.handle_upgrade(request, websocket)

    async def _forward_server_error(self, error: BaseException) -> None:
        backend = await self._wait_for_backend()
        await backend.handle_server_error(error)

    async def _wait_for_backend(self) -> ServerBackend:
        # Shielded: a dropped connection must not cancel the shared construction
        return await asyncio.shield(self.loader.get_backend())

    async def _bind(self) -> socket.socket:
        if self.options.socket_path:
            self._set_state(ListenerState.BINDING)
            return self._bind_unix(self.options.socket_path)

        self._set_state(ListenerState.RESOLVING_PORT)
        port = await self._resolver.resolve(self.options.port, self.options.pick_port)

        self._set_state(ListenerState.BINDING)
        logger.info(f"Binding to {self.options.host or '*'}:{port}")
        if self.options.host is None and socket.has_dualstack_ipv6():
            return socket.create_server(
                ("::", port),
                family=socket.AF_INET6,
                dualstack_ipv6=True
            )
        return socket.create_server((self.options.host or "", port))

    def _bind_unix(self, path: str) -> socket.socket:
        logger.info(f"Binding to socket path {path}")
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.bind(path)
            sock.listen()
        except OSError:
            sock.close()
            raise
        self._owns_socket_file = True
        return sock

    def _bound_address(self, sock: socket.socket) -> ListenAddress:
        bound = sock.getsockname()
        if not bound:
            raise RuntimeError("Unexpected server address")

        if sock.family == getattr(socket, "AF_UNIX", None):
            return ListenAddress(socket_path=bound)
        return ListenAddress(host=bound[0], port=bound[1])

    def _announce(self) -> None:
        address = self.context.address
        output = ""

        greeting = "\n".join(self.options.greeting)
        if greeting:
            output = f"\n\n{greeting}\n\n"

        if not address.is_socket_path and self.options.print_ip_address:
            for ip in get_external_ipv4_addresses():
                output += f"IP Address: {ip}\n"

        output += f"{READY_MESSAGE} {address}\n"
        print(output, end="", flush=True)

    def _on_warmup_done(self, future: asyncio.Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Backend warm-up failed: {error}")

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        error = context.get("exception")
        if isinstance(error, OSError) and self._is_listening_socket(context.get("socket")):
            logger.error(f"{context.get('message', 'Listening socket error')}: {error}")
            self._spawn(self._forward_server_error(error))
            return
        if self._previous_handler is not None:
            self._previous_handler(loop, context)
        else:
            loop.default_exception_handler(context)

    def _is_listening_socket(self, candidate: Any) -> bool:
        own = self.context.socket
        if candidate is None or own is None or own.fileno() == -1:
            return False
        return candidate.fileno() == own.fileno()

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Forwarding server error failed: {task.exception()}")

    def _close_socket(self) -> None:
        sock = self.context.socket
        if sock is not None and sock.fileno() != -1:
            logger.info("Closing listening socket")
            sock.close()

    def _set_state(self, state: ListenerState) -> None:
        logger.debug(f"Listener state: {self.state.value} -> {state.value}")
        self.context.state = state
