"""
Unit tests for port resolution

Tests PortResolver rules, range parsing and availability probing.
"""

import socket
import logging
import pytest
from unittest.mock import AsyncMock

from server_mgmt.port_manager import (
    PortRange,
    PortResolver,
    is_port_free,
    parse_range,
    resolve_port,
)


def probe_free_only(*free_ports):
    """Probe double: only the given ports are free; records probe order"""
    probed = []

    async def probe(port):
        probed.append(port)
        return port in free_ports

    probe.probed = probed
    return probe


class TestParseRange:
    """Tests for parse_range"""

    def test_parses_start_and_end(self):
        assert parse_range("3000-3010") == PortRange(start=3000, end=3010)

    def test_single_port_range(self):
        assert parse_range("4000-4000") == PortRange(start=4000, end=4000)

    @pytest.mark.parametrize("text", ["", "3000", "3000-", "-3000", "a-b", "3000-3010-3020", " 3000-3010", "3010-3000"])
    def test_rejects_malformed(self, text):
        assert parse_range(text) is None

    def test_contains_is_inclusive_of_end(self):
        port_range = PortRange(start=4000, end=4005)

        assert 4000 in port_range
        assert 4005 in port_range
        assert 4006 not in port_range
        assert None not in port_range


class TestExactPort:
    """Tests for exact --port values"""

    @pytest.mark.asyncio
    async def test_exact_port_returned(self):
        """Test resolve("8080") returns 8080"""
        # Arrange
        probe = AsyncMock()
        resolver = PortResolver(probe=probe)

        # Act
        result = await resolver.resolve("8080", None)

        # Assert
        assert result == 8080
        probe.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_zero_passes_through(self):
        """Test "0" is returned as 0 so the OS picks at bind time"""
        resolver = PortResolver(probe=AsyncMock())

        assert await resolver.resolve("0", None) == 0

    @pytest.mark.asyncio
    async def test_zero_ignores_pick_range(self):
        """Test "0" short-circuits even when a pick range is given"""
        # Arrange
        probe = AsyncMock()
        resolver = PortResolver(probe=probe)

        # Act
        result = await resolver.resolve("0", "4000-4005")

        # Assert
        assert result == 0
        probe.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_module_level_resolve_port(self):
        assert await resolve_port("8080") == 8080


class TestPortRange:
    """Tests for --port given as a range"""

    @pytest.mark.asyncio
    async def test_returns_first_free_port(self):
        """Test all ports busy except 3007 returns 3007"""
        # Arrange
        probe = probe_free_only(3007)
        resolver = PortResolver(probe=probe)

        # Act
        result = await resolver.resolve("3000-3010", None)

        # Assert
        assert result == 3007
        assert probe.probed == list(range(3000, 3008))

    @pytest.mark.asyncio
    async def test_exhausted_range_returns_fallback(self, caplog):
        """Test all ports busy returns the fallback 3000"""
        # Arrange
        probe = probe_free_only()
        resolver = PortResolver(probe=probe)

        # Act
        with caplog.at_level(logging.WARNING):
            result = await resolver.resolve("3000-3010", None)

        # Assert
        assert result == 3000
        assert probe.probed == list(range(3000, 3010))
        assert "Could not find free port in range: 3000-3010" in caplog.text

    @pytest.mark.asyncio
    async def test_range_end_is_not_probed(self):
        """Test the scan excludes the end port"""
        probe = probe_free_only(3010)
        resolver = PortResolver(probe=probe)

        assert await resolver.resolve("3000-3010", None) == 3000
        assert 3010 not in probe.probed

    @pytest.mark.asyncio
    async def test_custom_fallback(self):
        resolver = PortResolver(fallback_port=9999, probe=probe_free_only())

        assert await resolver.resolve("3000-3002", None) == 9999

    @pytest.mark.asyncio
    async def test_range_ignores_pick_range(self):
        """Test a --port range is scanned even if --pick-port is set"""
        probe = probe_free_only(3001, 4001)
        resolver = PortResolver(probe=probe)

        assert await resolver.resolve("3000-3010", "4000-4005") == 3001


class TestPickPort:
    """Tests for --pick-port"""

    @pytest.mark.asyncio
    async def test_pick_range_without_port(self):
        """Test pick range alone behaves like a --port range"""
        # Arrange
        probe = probe_free_only(4003)
        resolver = PortResolver(probe=probe)

        # Act
        result = await resolver.resolve(None, "4000-4005")

        # Assert
        assert result == 4003
        assert probe.probed == [4000, 4001, 4002, 4003]

    @pytest.mark.asyncio
    async def test_pick_range_exhausted_returns_fallback(self):
        probe = probe_free_only()
        resolver = PortResolver(probe=probe)

        assert await resolver.resolve(None, "4000-4005") == 3000
        assert probe.probed == [4000, 4001, 4002, 4003, 4004]

    @pytest.mark.asyncio
    async def test_port_in_pick_range_skips_probing(self):
        """Test resolve("4002", "4000-4005") returns 4002 without probing"""
        # Arrange
        probe = AsyncMock()
        resolver = PortResolver(probe=probe)

        # Act
        result = await resolver.resolve("4002", "4000-4005")

        # Assert
        assert result == 4002
        probe.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_port_at_pick_range_end_is_in_range(self):
        """Test the in-range check includes the end port"""
        probe = AsyncMock()
        resolver = PortResolver(probe=probe)

        assert await resolver.resolve("4005", "4000-4005") == 4005
        probe.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_port_outside_pick_range_scans(self):
        """Test a port outside the pick range is replaced by a scan result"""
        probe = probe_free_only(4001)
        resolver = PortResolver(probe=probe)

        assert await resolver.resolve("8080", "4000-4005") == 4001
        assert probe.probed == [4000, 4001]

    @pytest.mark.asyncio
    async def test_malformed_pick_range_falls_back(self, caplog):
        """Test a malformed pick range logs and returns the fallback"""
        # Arrange
        resolver = PortResolver(probe=AsyncMock())

        # Act
        with caplog.at_level(logging.WARNING):
            result = await resolver.resolve(None, "4000")

        # Assert
        assert result == 3000
        assert '--pick-port "4000" is not properly formatted.' in caplog.text

    @pytest.mark.asyncio
    async def test_exact_port_with_malformed_pick_range_uses_fallback(self):
        """Test an exact port is dropped when the pick range is malformed"""
        resolver = PortResolver(probe=AsyncMock())

        assert await resolver.resolve("8080", "oops") == 3000


class TestInvalidPort:
    """Tests for malformed --port values"""

    @pytest.mark.asyncio
    async def test_invalid_port_logs_and_falls_back(self, caplog):
        # Arrange
        resolver = PortResolver(probe=AsyncMock())

        # Act
        with caplog.at_level(logging.WARNING):
            result = await resolver.resolve("http", None)

        # Assert
        assert result == 3000
        assert '--port "http" is not a valid number or range.' in caplog.text

    @pytest.mark.asyncio
    async def test_invalid_port_falls_through_to_pick_range(self):
        probe = probe_free_only(4000)
        resolver = PortResolver(probe=probe)

        assert await resolver.resolve("http", "4000-4005") == 4000

    @pytest.mark.asyncio
    async def test_reversed_range_is_invalid(self, caplog):
        resolver = PortResolver(probe=AsyncMock())

        with caplog.at_level(logging.WARNING):
            assert await resolver.resolve("3010-3000", None) == 3000
        assert "is not a valid number or range" in caplog.text

    @pytest.mark.asyncio
    async def test_nothing_specified_returns_fallback(self):
        resolver = PortResolver(probe=AsyncMock())

        assert await resolver.resolve(None, None) == 3000
        assert await resolver.resolve("", "") == 3000


class TestIsPortFree:
    """Tests for the loopback bind probe"""

    @pytest.mark.asyncio
    async def test_occupied_port_is_not_free(self, occupied_port):
        assert await is_port_free(occupied_port) is False

    @pytest.mark.asyncio
    async def test_released_port_is_free(self):
        # Arrange
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            port = sock.getsockname()[1]

        # Act & Assert
        assert await is_port_free(port) is True

    @pytest.mark.asyncio
    async def test_out_of_range_port_is_not_free(self):
        assert await is_port_free(70000) is False

    @pytest.mark.asyncio
    async def test_scan_skips_occupied_port(self, occupied_port):
        """Test a real scan moves past a port held by another socket"""
        resolver = PortResolver()

        result = await resolver.resolve(f"{occupied_port}-{occupied_port + 1}", None)

        assert result == 3000
