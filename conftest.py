"""
Global pytest configuration for bedwatch.

Registers markers and provides shared fixtures: a fixed clock, order
factories and a mocked async Redis client.
"""

import os
from datetime import datetime, timezone, timedelta
from unittest.mock import AsyncMock

import pytest

from bedwatch.models.orders import IVOrder, MedOrder


FIXED_NOW = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers", "critical_safety: Alerting guarantees that must never regress"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests requiring multiple components"
    )
    config.addinivalue_line(
        "markers", "unit: Unit tests for individual components"
    )


def pytest_collection_modifyitems(config, items):
    """Add markers based on test location."""
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.integration)
        if "unit" in item.nodeid:
            item.add_marker(pytest.mark.unit)


def pytest_runtest_setup(item):
    if item.get_closest_marker("integration"):
        if os.environ.get("SKIP_INTEGRATION_TESTS", "false").lower() == "true":
            pytest.skip("Integration tests skipped in this environment")


@pytest.fixture
def now():
    """Fixed scan time."""
    return FIXED_NOW


@pytest.fixture
def make_iv(now):
    """Factory for IV orders due ``due_in`` from the fixed clock."""
    def _make(subject_id="HN-1", location_id=5, due_in=timedelta(hours=3), **kwargs):
        kwargs.setdefault("started_at", now - timedelta(hours=8))
        kwargs.setdefault("fluid_type", "0.9% NaCl 1000ml")
        return IVOrder(
            subject_id=subject_id,
            location_id=location_id,
            deadline_at=now + due_in,
            **kwargs
        )
    return _make


@pytest.fixture
def make_med(now):
    """Factory for medication orders expiring ``expire_in`` from the fixed clock."""
    def _make(subject_id="HN-1", location_id=5, expire_in=timedelta(minutes=30), **kwargs):
        kwargs.setdefault("started_at", now - timedelta(hours=12))
        kwargs.setdefault("med_name", "Dopamine")
        kwargs.setdefault("med_code", "DOPA")
        return MedOrder(
            subject_id=subject_id,
            location_id=location_id,
            deadline_at=now + expire_in,
            **kwargs
        )
    return _make


@pytest.fixture
def mock_redis():
    """Mock async Redis client for testing."""
    mock = AsyncMock()
    mock.hsetnx.return_value = True
    mock.hset.return_value = 1
    mock.hget.return_value = None
    mock.hgetall.return_value = {}
    mock.eval.return_value = 1
    return mock
