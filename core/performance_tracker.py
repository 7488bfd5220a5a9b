"""
Startup Timeline

Tracks when the server reached its startup milestones:
- Process start
- Listening socket ready
- First HTTP request
- First websocket upgrade
"""

import time
import logging
from enum import Enum
from typing import Optional, Dict, Any
from dataclasses import dataclass, field


logger = logging.getLogger(__name__)


class StartupMark(str, Enum):
    """Milestone names recorded on the timeline"""
    START = "server/start"
    STARTED = "server/started"
    FIRST_REQUEST = "server/firstRequest"
    FIRST_WEBSOCKET = "server/firstWebSocket"


@dataclass
class StartupTimeline:
    """
    Milestones for a single server process.

    Attributes:
        origin: Reference time all marks are measured from
        marks: Mark name -> wall clock time it was first reached
    """
    origin: float = field(default_factory=time.time)
    marks: Dict[str, float] = field(default_factory=dict)

    def mark(self, name: StartupMark) -> bool:
        """
        Record a milestone the first time it is reached.

        Returns:
            True if this call recorded the mark
        """
        if name.value in self.marks:
            return False
        self.marks[name.value] = time.time()
        logger.debug(f"{name.value} reached after {self.elapsed_ms(name):.1f} ms")
        return True

    def has_mark(self, name: StartupMark) -> bool:
        """Check if a milestone was reached"""
        return name.value in self.marks

    def elapsed_ms(self, name: StartupMark) -> Optional[float]:
        """
        Milliseconds between origin and a milestone.

        Returns:
            Elapsed ms or None if the milestone was not reached
        """
        reached = self.marks.get(name.value)
        if reached is None:
            return None
        return (reached - self.origin) * 1000

    def to_dict(self) -> Dict[str, Any]:
        """Convert timeline to dictionary"""
        return {mark.value: self.elapsed_ms(mark) for mark in StartupMark}
