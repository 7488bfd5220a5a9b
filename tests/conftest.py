"""
Pytest configuration and shared fixtures

Provides test fixtures for listener testing, backend mocking, etc.
"""

import socket
import asyncio
import pytest
from unittest.mock import Mock, AsyncMock
from fastapi.testclient import TestClient
from typing import Generator

from api.main import create_app
from server_mgmt.listener import ListenAddress


@pytest.fixture
def mock_backend() -> Mock:
    """
    Backend double exposing the ServerBackend interface

    Returns:
        Mock with async handlers and a sync dispose
    """
    backend = Mock()
    backend.handle_request = AsyncMock()
    backend.handle_upgrade = AsyncMock()
    backend.handle_server_error = AsyncMock()
    backend.dispose = Mock()
    return backend


@pytest.fixture
def gated_factory(mock_backend):
    """
    Backend factory that blocks until its gate is opened

    Returns:
        Factory coroutine function with ``gate`` and ``calls`` attributes
    """
    gate = asyncio.Event()
    calls = []

    async def factory(address=None):
        calls.append(address)
        await gate.wait()
        return mock_backend

    factory.gate = gate
    factory.calls = calls
    return factory


@pytest.fixture
def ready_factory(mock_backend):
    """
    Backend factory that returns the mock backend immediately

    Returns:
        Factory coroutine function with a ``calls`` attribute
    """
    calls = []

    async def factory(address=None):
        calls.append(address)
        return mock_backend

    factory.calls = calls
    return factory


@pytest.fixture
def occupied_port() -> Generator[int, None, None]:
    """
    A loopback port held by a listening socket for the test's duration

    Returns:
        Port number
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen()
    try:
        yield sock.getsockname()[1]
    finally:
        sock.close()


@pytest.fixture
def client() -> TestClient:
    """
    FastAPI test client for the default backend

    Returns:
        TestClient for API testing
    """
    return TestClient(create_app(ListenAddress(host="127.0.0.1", port=3000)))

