"""
Server lifecycle management for the agent host server.

Provides port resolution, lazy backend loading, the listener and
shutdown coordination.
"""

from .port_manager import (
    PortRange,
    PortResolver,
    parse_range,
    is_port_free,
    resolve_port,
)

from .backend_loader import (
    BackendLoader,
    BackendState,
    ServerBackend,
    load_backend,
)

from .listener import (
    Listener,
    ListenAddress,
    ListenOptions,
    ListenerContext,
    ListenerState,
    READY_MESSAGE,
)

from .shutdown import ShutdownCoordinator

__all__ = [
    # Port resolution
    'PortRange',
    'PortResolver',
    'parse_range',
    'is_port_free',
    'resolve_port',

    # Backend loading
    'BackendLoader',
    'BackendState',
    'ServerBackend',
    'load_backend',

    # Listener
    'Listener',
    'ListenAddress',
    'ListenOptions',
    'ListenerContext',
    'ListenerState',
    'READY_MESSAGE',

    # Shutdown
    'ShutdownCoordinator',
]
