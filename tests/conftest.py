"""Shared fixtures: an in-memory async Redis double and a wired test client."""

import fnmatch
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import WebSocket
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from app import create_app
from backend import MessageStore, UPDATE_IF_EXISTS_SCRIPT


class FakeRedis:
    """Just enough of ``redis.asyncio.Redis`` for the message store.

    Setting ``fail`` makes every command raise a connection error, which is
    how a Redis outage looks to the application.
    """

    def __init__(self):
        self.data = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("Error 111 connecting to localhost:6379. Connection refused.")

    async def ping(self):
        self._check()
        return True

    async def incr(self, key):
        self._check()
        self.data[key] = int(self.data.get(key, 0)) + 1
        return self.data[key]

    async def hset(self, key, mapping):
        self._check()
        record = self.data.setdefault(key, {})
        added = len([k for k in mapping if k not in record])
        record.update({k: str(v) for k, v in mapping.items()})
        return added

    async def hgetall(self, key):
        self._check()
        value = self.data.get(key)
        return dict(value) if isinstance(value, dict) else {}

    async def delete(self, *keys):
        self._check()
        return sum(1 for key in keys if self.data.pop(key, None) is not None)

    async def exists(self, *keys):
        self._check()
        return sum(1 for key in keys if key in self.data)

    async def scan_iter(self, match=None, count=None):
        self._check()
        # newest first so callers cannot rely on store order
        for key in reversed(list(self.data)):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    def register_script(self, script):
        assert script == UPDATE_IF_EXISTS_SCRIPT, "only the conditional update script is emulated"
        return FakeUpdateIfExistsScript(self)

    async def aclose(self):
        pass


class FakeUpdateIfExistsScript:
    """Runs the conditional update without yielding, as Redis runs a script atomically."""

    def __init__(self, fake_redis):
        self.fake_redis = fake_redis

    async def __call__(self, keys=None, args=None, client=None):
        self.fake_redis._check()
        record = self.fake_redis.data.get(keys[0])
        if not isinstance(record, dict):
            return 0
        record.update({"content": str(args[0]), "updated_at": str(args[1])})
        return 1


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(fake_redis):
    return MessageStore(fake_redis)


@pytest.fixture
def app(fake_redis):
    return create_app(
        redis_client=fake_redis,
        broadcast_scope="connections",
        seed_default_messages=False,
        cors_origins=["http://localhost:8080"],
    )


@pytest.fixture
def client(app):
    """Test client with the lifespan running; HTTP and sockets share one event loop."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def hub(app, client):
    return app.state.hub


def make_connection():
    """Stand-in for a hub Connection: records what was sent to it."""
    connection = MagicMock()
    connection.sent = []
    connection.send.side_effect = connection.sent.append
    return connection


@pytest.fixture
def connection_factory():
    return make_connection


@pytest.fixture
def websocket_mock():
    websocket = MagicMock(spec=WebSocket)
    websocket.accept = AsyncMock()
    websocket.send_text = AsyncMock()
    websocket.receive = AsyncMock()
    return websocket
