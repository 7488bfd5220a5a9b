"""
Backend Loader

Lazily builds the one backend the listener forwards traffic to.
Construction starts on first demand and is shared by every caller:
concurrent callers wait on the same future, later callers get the
already-resolved one.
"""

import asyncio
import inspect
import logging
import importlib
from enum import Enum
from types import ModuleType
from typing import Any, Awaitable, Callable, Optional, Union
from abc import ABC, abstractmethod


logger = logging.getLogger(__name__)


class ServerBackend(ABC):
    """Interface the listener forwards inbound events to"""

    @abstractmethod
    async def handle_request(self, request: Any, send: Any) -> None:
        """Answer an HTTP request"""
        pass

    @abstractmethod
    async def handle_upgrade(self, request: Any, websocket: Any) -> None:
        """Take over a connection that asked to switch protocols"""
        pass

    @abstractmethod
    async def handle_server_error(self, error: BaseException) -> None:
        """React to an error on the listening socket"""
        pass

    @abstractmethod
    def dispose(self) -> None:
        """Release backend resources"""
        pass


BackendFactory = Callable[[], Union[Awaitable[ServerBackend], ServerBackend]]


class BackendState(str, Enum):
    """State of the backend memoization cell"""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    FAILED = "failed"


class BackendLoader:
    """
    Single-flight memoized backend factory.

    The factory runs at most once per loader. A failed construction is
    cached like a successful one; later calls see the same failure.
    """

    def __init__(self, factory: BackendFactory):
        """
        Initialize backend loader.

        Args:
            factory: Zero-argument callable returning the backend or an
                awaitable of it
        """
        self._factory = factory
        self._future: Optional[asyncio.Future] = None

    def get_backend(self) -> asyncio.Future:
        """
        Get the shared backend future, starting construction on first call.

        Every call returns the identical future object. Callers that may
        be cancelled should await it through ``asyncio.shield`` so their
        cancellation does not cancel the construction.

        Returns:
            Future resolving to the backend handle
        """
        if self._future is None:
            logger.info("Starting backend construction")
            self._future = asyncio.ensure_future(self._construct())
        return self._future

    @property
    def state(self) -> BackendState:
        """Current state of the memoization cell"""
        if self._future is None:
            return BackendState.NOT_STARTED
        if not self._future.done():
            return BackendState.IN_PROGRESS
        if self._future.cancelled() or self._future.exception() is not None:
            return BackendState.FAILED
        return BackendState.RESOLVED

    @property
    def backend(self) -> Optional[ServerBackend]:
        """Backend handle if construction succeeded, None otherwise"""
        if self.state == BackendState.RESOLVED:
            return self._future.result()
        return None

    async def _construct(self) -> ServerBackend:
        try:
            result = self._factory()
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error(f"Backend construction failed: {e}")
            raise

        logger.info(f"Backend ready: {type(result).__name__}")
        return result


def import_backend_module(module_path: str) -> ModuleType:
    """
    Import a backend module by dotted path.

    Args:
        module_path: Module import path, e.g. ``"api.main"``

    Returns:
        Imported module
    """
    logger.debug(f"Importing backend module {module_path}")
    return importlib.import_module(module_path)


async def load_backend(module_path: str, address: Any) -> ServerBackend:
    """
    Import a backend module and build its backend for a bound address.

    The import runs in a worker thread so a heavy module does not stall
    the event loop while connections are being accepted.

    Args:
        module_path: Module exposing ``create_server(address)``
        address: Address the listener is bound to

    Returns:
        Backend handle

    Raises:
        RuntimeError: If the module has no create_server factory
    """
    module = await asyncio.to_thread(import_backend_module, module_path)

    create_server = getattr(module, "create_server", None)
    if not callable(create_server):
        raise RuntimeError(f"Backend module {module_path} has no create_server()")

    backend = create_server(address)
    if inspect.isawaitable(backend):
        backend = await backend
    return backend
