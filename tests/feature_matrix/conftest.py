"""
Shared fixtures for feature matrix tests.
"""

import pytest

from feature_matrix.cache import TTLCache, reset_caches
from feature_matrix.clock import MockClock


@pytest.fixture(autouse=True)
def clear_process_caches():
    """Start and end every test with empty process-wide caches."""
    reset_caches()
    yield
    reset_caches()


@pytest.fixture
def mock_clock():
    return MockClock()


@pytest.fixture
def row_cache(mock_clock):
    return TTLCache("rows", ttl_seconds=300, clock=mock_clock)


@pytest.fixture
def pca_cache(mock_clock):
    return TTLCache("pca", ttl_seconds=300, clock=mock_clock)
