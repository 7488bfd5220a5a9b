"""API route modules"""

from . import (
    echo,
    health,
)

__all__ = [
    "echo",
    "health",
]
