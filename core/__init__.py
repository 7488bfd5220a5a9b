"""
Core utilities shared by the agent host server: configuration,
startup timeline and network helpers.
"""

from .config import ServerSettings, load_settings
from .performance_tracker import StartupMark, StartupTimeline

__all__ = [
    'ServerSettings',
    'load_settings',
    'StartupMark',
    'StartupTimeline',
]
