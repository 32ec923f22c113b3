"""
Pytest configuration and shared fixtures for ServerDate tests.
"""

import pytest

from server_date.config import SyncConfig

from .helpers import FakeClock


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def config():
    """Default configuration with a short session timeout for tests."""
    return SyncConfig(synchronization_timeout=1000)
