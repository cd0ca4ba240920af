"""Pytest configuration and fixtures for rigiddb.

Unit tests run against FakeRedis, which records every call and emulates the
EVALSHA / SCRIPT LOAD handshake. Integration tests use a real Redis via the
redis_client fixture and are skipped when none is reachable.
"""

import hashlib
import os
from typing import Any

import pytest
import redis.asyncio as redis
from redis.exceptions import NoScriptError

from rigiddb.core.config import get_settings
from rigiddb.infrastructure.redis.client import create_redis_client
from rigiddb.infrastructure.redis.script_cache import ScriptCache

# Integration tests flush this database.
_TEST_REDIS_DB = 15


class FakeRedis:
    """In-memory stand-in for redis.asyncio.Redis (scripts are not executed).

    evalsha returns queued replies in order, or an empty-batch reply when
    none are queued.
    """

    def __init__(
        self,
        replies: list[Any] | None = None,
        values: dict[str, str] | None = None,
    ) -> None:
        self.replies = list(replies or [])
        self.values = dict(values or {})
        self.scripts: dict[str, str] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.closed = False

    def command_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    def flush_scripts(self) -> None:
        self.scripts.clear()

    async def mget(self, *keys: str) -> list[str | None]:
        self.calls.append(("mget", keys))
        return [self.values.get(k) for k in keys]

    async def script_load(self, text: str) -> str:
        sha = hashlib.sha1(text.encode()).hexdigest()
        self.calls.append(("script_load", sha))
        self.scripts[sha] = text
        return sha

    async def evalsha(self, sha: str, numkeys: int, *args: str) -> Any:
        self.calls.append(("evalsha", sha, numkeys, args))
        if sha not in self.scripts:
            raise NoScriptError("NOSCRIPT No matching script. Please use EVAL.")
        if self.replies:
            return self.replies.pop(0)
        return ["none", "noError"]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def make_fake_redis() -> type[FakeRedis]:
    """FakeRedis class, for tests that need queued replies or stored values."""
    return FakeRedis


@pytest.fixture
def script_cache() -> ScriptCache:
    """Fresh cache per test so tests never share loaded-script state."""
    return ScriptCache()


@pytest.fixture
def car_schema() -> dict[str, Any]:
    """Schema with a unique and a non-unique index over different kinds."""
    return {
        "car": {
            "definition": {
                "color": "string",
                "mileage": "int",
                "convertible": "boolean",
                "purchaseDate": {"type": "date", "allowNull": True},
            },
            "indices": {
                "purchase": {"unique": True, "fields": ["purchaseDate"]},
                "looks": {
                    "unique": False,
                    "fields": [
                        {"name": "color", "caseInsensitive": True},
                        "mileage",
                        "convertible",
                    ],
                },
            },
        }
    }


@pytest.fixture
async def redis_client() -> redis.Redis:
    """Real Redis client on a flushed test database.

    Uses RIGIDDB_REDIS_* settings; the database defaults to 15 unless
    RIGIDDB_REDIS_DB is set. Skips when Redis does not answer PING.
    """
    get_settings.cache_clear()
    settings = get_settings()
    if "RIGIDDB_REDIS_DB" not in os.environ:
        settings = settings.model_copy(update={"redis_db": _TEST_REDIS_DB})
    client = create_redis_client(settings)
    try:
        await client.ping()
    except (redis.ConnectionError, redis.TimeoutError, OSError):
        await client.aclose()
        pytest.skip("Redis not reachable: set RIGIDDB_REDIS_HOST / RIGIDDB_REDIS_PORT")
    await client.flushdb()
    yield client
    await client.flushdb()
    await client.aclose()
