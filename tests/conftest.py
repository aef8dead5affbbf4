"""
Pytest configuration and shared fixtures.
"""
from datetime import datetime, timezone

import pytest

from sensorquery.schemas import DataPoint, QueryParams

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


def pytest_configure(config):
    """Configure pytest-asyncio mode."""
    config.option.asyncio_mode = "auto"


@pytest.fixture
def query_params():
    """One-hour window on 2024-01-15 with no ID filters."""
    return QueryParams(
        start_time=datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc),
        end_time=datetime(2024, 1, 15, 11, 0, tzinfo=timezone.utc),
        limit=100,
    )


@pytest.fixture
def inverted_params():
    """start_time after end_time."""
    return QueryParams(
        start_time=datetime(2024, 1, 15, 11, 0, tzinfo=timezone.utc),
        end_time=datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def make_point():
    """Factory for DataPoints with sensible defaults."""
    def _make(tag_id="T1", value="1.0", minute=0, **overrides):
        fields = {
            "time": datetime(2024, 1, 15, 10, minute, tzinfo=timezone.utc),
            "collector_id": "1",
            "gateway_id": "2",
            "equipment_id": "3",
            "tag_id": tag_id,
            "value": value,
        }
        fields.update(overrides)
        return DataPoint(**fields)
    
    return _make
