"""Pytest configuration and fixtures."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from flatmodel import Field, FieldType, FlatModel, Schema
from kinds.base import ResourceKind
from kinds.priority_class import PriorityClassKind
from mapper import metadata_fields
from store import InMemoryObjectStore


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class ConfigMapKind(ResourceKind):
    """Minimal namespaced kind with a single string map."""

    name = "config_map"
    api_version = "v1"
    kind = "ConfigMap"
    plural = "configmaps"
    namespaced = True

    def __init__(self):
        self._schema = Schema(
            metadata_fields("config map", namespaced=True)
            + [Field("data", FieldType.MAP, ("data",))]
        )

    @property
    def schema(self):
        return self._schema


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def kind():
    """PriorityClass kind definition."""
    return PriorityClassKind()


@pytest.fixture
def config_map_kind():
    return ConfigMapKind()


@pytest.fixture
def store():
    """Cluster scoped in-memory object store."""
    return InMemoryObjectStore()


@pytest.fixture
def sample_config():
    """Nested configuration for a PriorityClass."""
    return {
        "metadata": {"name": "high"},
        "value": 1000000,
        "global_default": False,
    }


@pytest.fixture
def sample_model(kind, sample_config):
    return FlatModel.from_config(kind.schema, sample_config)


@pytest.fixture
def mock_pool():
    """Create a mock asyncpg pool."""
    pool = AsyncMock()
    pool.acquire = MagicMock()
    return pool
