"""
Pytest configuration and fixtures for the marketlink tests.
"""

import sys
from pathlib import Path

import pytest

# Add project root to Python path so imports work
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from marketlink.config import Config
from marketlink.core import (
    Gateway,
    PersistentCache,
    ResilienceContext,
    SQLiteRowStore,
    VirtualClock,
)


@pytest.fixture
def clock():
    """Virtual clock; sleeps complete instantly and are recorded."""
    return VirtualClock()


@pytest.fixture
def test_config():
    """Small limits so throttling is easy to reach."""
    return Config(
        rate_limit_per_minute=10,
        warning_threshold_pct=70,
        critical_threshold_pct=85,
        hard_limit_pct=95,
        throttle_base_delay=0.5,
        throttle_max_delay=5.0,
        retry_max_attempts=3,
        retry_base_delay=1.0,
        retry_max_delay=10.0,
    )


@pytest.fixture
def persistent(clock):
    """In-memory persistent cache on the virtual clock."""
    return PersistentCache(SQLiteRowStore(":memory:"), stale_after=4 * 3600, clock=clock)


@pytest.fixture
def context(test_config, clock, persistent):
    """Fresh resilience context per test."""
    return ResilienceContext.create(test_config, clock=clock, persistent=persistent)


@pytest.fixture
def gateway(context):
    return Gateway(context)


@pytest.fixture(scope="session")
def test_tickers():
    """Return a small set of tickers for testing."""
    return ["AAPL", "MSFT", "GOOG", "AMZN"]
