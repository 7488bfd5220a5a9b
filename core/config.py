# Agent Host Server Configuration
"""
Strongly typed configuration for the agent host server.

Module-level constants hold the defaults; ``load_settings()`` applies
environment overrides on top of them.
"""

import os
import logging
from enum import Enum
from typing import List, Literal, Optional
from dataclasses import dataclass, field


logger = logging.getLogger(__name__)


# Logging configuration
LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"

# Server identity
SERVER_NAME: str = "agent-host-server"
SERVER_VERSION: str = "1.0.0"

# Lines printed above the readiness announcement (empty = no greeting)
SERVER_GREETING: List[str] = []

# Port resolution
DEFAULT_FALLBACK_PORT: int = 3000
PROBE_HOST: str = "127.0.0.1"

# Seconds uvicorn waits for in-flight requests on shutdown before cancelling them
SHUTDOWN_DRAIN_TIMEOUT: int = 0

# Module providing create_server(address) and spawn_cli(argv)
DEFAULT_BACKEND_MODULE: str = "api.main"


class ExitCode(int, Enum):
    """Process exit codes"""
    SUCCESS = 0
    ERROR = 1
    INVALID_ARGS = 2
    NOT_IMPLEMENTED = 3


class EnvVar:
    """Environment variables read by load_settings()"""
    BACKEND_MODULE = "AGENT_HOST_BACKEND_MODULE"
    LOG_LEVEL = "AGENT_HOST_LOG_LEVEL"
    FALLBACK_PORT = "AGENT_HOST_FALLBACK_PORT"


@dataclass
class ServerSettings:
    """
    Effective settings for one server process.

    Attributes:
        backend_module: Import path of the backend module
        log_level: Minimum log level name
        fallback_port: Port used when port resolution finds nothing better
        greeting: Lines printed before the readiness line
    """
    backend_module: str = DEFAULT_BACKEND_MODULE
    log_level: str = LOG_LEVEL
    fallback_port: int = DEFAULT_FALLBACK_PORT
    greeting: List[str] = field(default_factory=lambda: list(SERVER_GREETING))


def _int_from_env(name: str, default: int) -> int:
    value: Optional[str] = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring {name}={value!r}: not an integer")
        return default


def load_settings() -> ServerSettings:
    """
    Build settings from defaults and environment overrides.

    Returns:
        ServerSettings instance
    """
    return ServerSettings(
        backend_module=os.environ.get(EnvVar.BACKEND_MODULE) or DEFAULT_BACKEND_MODULE,
        log_level=(os.environ.get(EnvVar.LOG_LEVEL) or LOG_LEVEL).upper(),
        fallback_port=_int_from_env(EnvVar.FALLBACK_PORT, DEFAULT_FALLBACK_PORT),
    )
