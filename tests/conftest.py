"""Shared pytest configuration and fixtures.

This module provides global fixtures and configuration that are available
to all tests in the test suite.

Fixtures defined here are automatically available to all tests without explicit
import statements. Keep fixtures small, composable, and focused on setup/teardown.
Do NOT put business logic in fixtures.
"""

# pylint: disable=redefined-outer-name

import pytest

from clients import reset_http_clients
from config import get_settings


@pytest.fixture(autouse=True)
def clean_process_state():
    """Clear cached settings and registered client chains around each test."""
    get_settings.cache_clear()
    reset_http_clients()
    yield
    get_settings.cache_clear()
    reset_http_clients()
