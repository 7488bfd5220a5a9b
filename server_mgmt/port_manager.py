"""
Port resolution for the agent host server.

Turns the ``--port`` / ``--pick-port`` strings into a concrete port:
- Exact port (``0`` asks the OS for an ephemeral port at bind time)
- Port range scanned for the first free port
- Exact port validated against a pick range
- Fixed fallback port when nothing else applies

Availability is tested by binding a throwaway listener on the loopback
interface and closing it again.
"""

import re
import asyncio
import logging
from typing import Awaitable, Callable, Optional
from dataclasses import dataclass

from core.config import DEFAULT_FALLBACK_PORT, PROBE_HOST


logger = logging.getLogger(__name__)

PortProbe = Callable[[int], Awaitable[bool]]

_PORT_PATTERN = re.compile(r"[0-9]+")
_RANGE_PATTERN = re.compile(r"([0-9]+)-([0-9]+)")


@dataclass(frozen=True)
class PortRange:
    """
    Port range parsed from a ``start-end`` string.

    Attributes:
        start: First port of the range
        end: Last port of the range; excluded when scanning,
            included when validating an exact port
    """
    start: int
    end: int

    def __contains__(self, port: object) -> bool:
        return isinstance(port, int) and self.start <= port <= self.end

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


def parse_range(text: str) -> Optional[PortRange]:
    """
    Parse a ``start-end`` port range.

    Args:
        text: Range string, e.g. ``"3000-3010"``

    Returns:
        PortRange, or None if the text is not a well-formed range
    """
    match = _RANGE_PATTERN.fullmatch(text)
    if not match:
        return None
    start, end = int(match.group(1)), int(match.group(2))
    if start > end:
        return None
    return PortRange(start=start, end=end)


async def is_port_free(port: int, host: str = PROBE_HOST) -> bool:
    """
    Check if a port can be bound by binding a throwaway listener.

    Args:
        port: Port number to probe
        host: Interface to bind on

    Returns:
        True if the bind succeeded
    """
    loop = asyncio.get_running_loop()
    try:
        server = await loop.create_server(asyncio.Protocol, host, port)
    except (OSError, OverflowError) as e:
        logger.debug(f"Port {port} not available: {e}")
        return False

    server.close()
    await server.wait_closed()
    return True


class PortResolver:
    """
    Resolves port specifications to a concrete port number.

    ``resolve()`` never raises: malformed input is logged and resolution
    falls through to the next rule, ending at the fallback port.
    """

    def __init__(
        self,
        fallback_port: int = DEFAULT_FALLBACK_PORT,
        probe_host: str = PROBE_HOST,
        probe: Optional[PortProbe] = None
    ):
        """
        Initialize port resolver.

        Args:
            fallback_port: Port returned when no rule yields a port
            probe_host: Interface used for availability probes
            probe: Custom availability probe (defaults to a loopback bind)
        """
        self.fallback_port = fallback_port
        self.probe_host = probe_host
        self._probe = probe

    async def resolve(
        self,
        port_str: Optional[str] = None,
        pick_port_str: Optional[str] = None
    ) -> int:
        """
        Resolve ``--port`` and ``--pick-port`` values to a port.

        If both are given and the port lies inside the pick range, the
        port is used as is. Otherwise the pick range is scanned for a
        free port.

        Args:
            port_str: Exact port or ``start-end`` range
            pick_port_str: ``start-end`` range to pick a free port from

        Returns:
            Port number (0 means "let the OS choose")
        """
        specific_port: Optional[int] = None

        if port_str:
            port_range = parse_range(port_str)
            if _PORT_PATTERN.fullmatch(port_str):
                specific_port = int(port_str)
                if specific_port == 0 or not pick_port_str:
                    return specific_port
            elif port_range:
                return await self.find_free_port(port_range.start, port_range.end)
            else:
                logger.warning(f'--port "{port_str}" is not a valid number or range.')

        if pick_port_str:
            pick_range = parse_range(pick_port_str)
            if pick_range:
                if specific_port in pick_range:
                    return specific_port
                return await self.find_free_port(pick_range.start, pick_range.end)
            logger.warning(f'--pick-port "{pick_port_str}" is not properly formatted.')

        return self.fallback_port

    async def find_free_port(self, start: int, end: int) -> int:
        """
        Find the first free port in ``[start, end)``.

        Candidates are probed one at a time, in order.

        Args:
            start: First port to probe
            end: Port after the last one to probe

        Returns:
            First free port, or the fallback port if none is free
        """
        for port in range(start, end):
            if await self._is_free(port):
                logger.info(f"Found free port {port} in range {start}-{end}")
                return port

        logger.warning(
            f"Could not find free port in range: {start}-{end}. "
            f"Using {self.fallback_port} instead."
        )
        return self.fallback_port

    async def _is_free(self, port: int) -> bool:
        if self._probe is not None:
            return await self._probe(port)
        return await is_port_free(port, self.probe_host)


async def resolve_port(
    port_str: Optional[str] = None,
    pick_port_str: Optional[str] = None
) -> int:
    """
    Resolve a port with the default resolver.

    Args:
        port_str: Exact port or ``start-end`` range
        pick_port_str: ``start-end`` range to pick a free port from

    Returns:
        Port number
    """
    return await PortResolver().resolve(port_str, pick_port_str)
