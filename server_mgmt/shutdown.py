"""
Shutdown coordination for the agent host server.

Wraps the serving scope so cleanup runs on every exit path:
- Normal return
- Exceptions (fatal errors, KeyboardInterrupt)
- SIGTERM (turned into SystemExit so it unwinds through the scope)

Cleanup is best effort and never blocks: the listening socket is closed
and the backend is disposed only if it finished construction.
"""

import signal
import logging
import threading
from typing import Any, Optional

from .listener import Listener


logger = logging.getLogger(__name__)


class ShutdownCoordinator:
    """
    Context manager releasing listener resources on exit.

    Example:
        listener = Listener(options, factory)
        with ShutdownCoordinator(listener):
            asyncio.run(listener.run())
    """

    def __init__(self, listener: Listener, handle_signals: bool = True):
        """
        Initialize shutdown coordinator.

        Args:
            listener: Listener whose socket and backend are released
            handle_signals: Turn SIGTERM into SystemExit while in scope
        """
        self.listener = listener
        self.handle_signals = handle_signals
        self._done = False
        self._previous_sigterm: Optional[Any] = None

    def __enter__(self) -> "ShutdownCoordinator":
        if self.handle_signals and threading.current_thread() is threading.main_thread():
            self._previous_sigterm = signal.signal(signal.SIGTERM, self._on_sigterm)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            self.shutdown()
        finally:
            if self._previous_sigterm is not None:
                signal.signal(signal.SIGTERM, self._previous_sigterm)
                self._previous_sigterm = None

    def shutdown(self) -> None:
        """
        Close the listener and dispose a resolved backend.

        Runs once; later calls do nothing. A backend still under
        construction (or never requested) is left alone.
        """
        if self._done:
            return
        self._done = True
        logger.info("Shutting down agent host server")

        try:
            self.listener.close()
        except Exception as e:
            logger.error(f"Error closing listener: {e}")

        loader = self.listener.loader
        backend = loader.backend
        if backend is None:
            logger.info(f"No backend to dispose (state: {loader.state.value})")
            return

        try:
            backend.dispose()
            logger.info("Backend disposed")
        except Exception as e:
            logger.error(f"Error disposing backend: {e}")

    @staticmethod
    def _on_sigterm(signum: int, frame: Any) -> None:
        logger.info(f"Received signal {signum}, exiting")
        raise SystemExit(0)
