"""Shared pytest configuration and fixtures for swarm SLAM tests.

This module provides:
- Custom markers for test categorization
- Shared fixtures for a deterministic control loop
"""

import numpy as np
import pytest

from swarm_slam.core import AgentConfig, AnchorConfig, SystemConfig
from swarm_slam.coordination import SlamSystemManager


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Pure Python tests, no hardware required")
    config.addinivalue_line("markers", "slow: Tests that take a long time")


@pytest.fixture
def two_agent_config() -> SystemConfig:
    """Two agents, anchor 0, with the startup grace disabled."""
    return SystemConfig(
        agents=[AgentConfig(0), AgentConfig(1)],
        anchor=AnchorConfig(startup_grace_seconds=0.0),
    )


@pytest.fixture
def manager(two_agent_config) -> SlamSystemManager:
    """Control loop started at t=0 for deterministic ticking."""
    return SlamSystemManager(two_agent_config, start_time=0.0)


@pytest.fixture
def rng():
    """Seeded random generator for property-style tests."""
    return np.random.default_rng(42)


def pytest_collection_modifyitems(config, items):
    """Auto-add markers based on test location."""
    for item in items:
        # Auto-mark tests in tests/unit/ with @pytest.mark.unit
        if "tests/unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
