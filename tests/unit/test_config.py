"""Tests for settings and the Redis client factory."""

import logging

import pytest
from pydantic import ValidationError

from rigiddb.core.config import Settings, get_settings
from rigiddb.infrastructure.redis.client import create_redis_client
from rigiddb.shared.logging import setup_logging


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_env_prefix(monkeypatch) -> None:
    monkeypatch.setenv("RIGIDDB_REDIS_PORT", "6380")
    monkeypatch.setenv("RIGIDDB_DEBUG", "true")
    settings = get_settings()
    assert settings.redis_port == 6380
    assert settings.debug is True


def test_bad_port_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(redis_port=70000)


async def test_client_uses_settings() -> None:
    client = create_redis_client(Settings(redis_host="cache.local", redis_db=3))
    kwargs = client.connection_pool.connection_kwargs
    assert kwargs["host"] == "cache.local"
    assert kwargs["db"] == 3
    assert kwargs["decode_responses"] is True
    await client.aclose()


def test_setup_logging_level_follows_debug(monkeypatch) -> None:
    monkeypatch.setenv("RIGIDDB_DEBUG", "true")
    captured = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: captured.update(kwargs))
    setup_logging()
    assert captured["level"] == logging.DEBUG
