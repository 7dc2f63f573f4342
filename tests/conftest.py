"""Pytest configuration and shared fixtures."""

import fakeredis
import pytest
from fastapi.testclient import TestClient

from backend import MemoryBackend, RedisBackend
from registry import RoomRegistry


@pytest.fixture
def fake_redis():
    """A FakeRedis client backed by its own server so tests never share state."""
    client = fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    return client


@pytest.fixture(params=["memory", "redis"])
def backend(request, fake_redis):
    """Every registry test runs once per storage backend."""
    if request.param == "memory":
        backend = MemoryBackend()
    else:
        backend = RedisBackend(fake_redis)
    yield backend
    backend.close()


@pytest.fixture
def make_registry(backend):
    def _make(**policies):
        return RoomRegistry(backend, **policies)
    return _make


@pytest.fixture
def registry(make_registry) -> RoomRegistry:
    return make_registry()


@pytest.fixture
def memory_registry() -> RoomRegistry:
    return RoomRegistry(MemoryBackend())


@pytest.fixture
def api_client(memory_registry):
    """FastAPI test client wired to an in-memory registry."""
    from app import create_app

    with TestClient(create_app(memory_registry)) as client:
        yield client
