"""Shared test fixtures for the CEA agent test suite."""

from __future__ import annotations

import os
from datetime import datetime
from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("TOOL_BACKEND_URL", "https://tools.example.test/mcp/test")


@pytest.fixture
def fixed_clock():
    """A clock frozen at 26 Dec 2025, 10:30 in Mexico City."""
    clock = MagicMock()
    clock.now.return_value = datetime(2025, 12, 26, 10, 30, tzinfo=ZoneInfo("America/Mexico_City"))
    return clock


@pytest.fixture
def mock_backend_response():
    """Factory fixture for mock JSON-RPC HTTP responses from the tool backend."""

    def _make(data: dict | list, status_code: int = 200, headers: dict | None = None):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = str(data)
        mock.headers = {"content-type": "application/json", **(headers or {})}
        return mock

    return _make
