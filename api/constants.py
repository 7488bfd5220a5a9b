"""
API Constants

String literals for the default backend's endpoints.
Single source of truth for API-related constants.
"""

from enum import Enum


class APIPrefix(str, Enum):
    """API path prefixes"""
    V1 = "/api/v1"


class EndpointPath(str, Enum):
    """API endpoint paths (relative to prefix)"""
    HEALTH = "/health"
    ECHO = "/echo"


class HealthState(str, Enum):
    """Values of HealthStatus.status"""
    OK = "ok"
    DISPOSED = "disposed"
