"""Script cache and executor.

Scripts are sent to Redis once with SCRIPT LOAD and afterwards run by SHA1
with EVALSHA. The cache only remembers which hashes this process has loaded;
correctness never depends on it: a hash Redis no longer knows (SCRIPT FLUSH,
restart, failover) costs one extra LOAD and retry.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

import redis.asyncio as redis
from redis.exceptions import NoScriptError

from rigiddb.scripting.context import BuildContext
from rigiddb.services.hash_service import SHA1Algorithm

logger = logging.getLogger(__name__)

_SHA1 = SHA1Algorithm()


def script_sha(text: str) -> str:
    """SHA1 hex digest Redis uses to name a script."""
    return _SHA1.hash(text)


class ScriptCache:
    """Set of script hashes known to be loaded on the server."""

    def __init__(self) -> None:
        self._loaded: set[str] = set()

    def __contains__(self, sha: str) -> bool:
        return sha in self._loaded

    def __len__(self) -> int:
        return len(self._loaded)

    def mark_loaded(self, sha: str) -> None:
        self._loaded.add(sha)

    def forget(self, sha: str) -> None:
        self._loaded.discard(sha)

    def clear(self) -> None:
        self._loaded.clear()


@lru_cache
def get_script_cache() -> ScriptCache:
    """Process-wide default cache shared by stores that are not given one."""
    return ScriptCache()


class ScriptExecutor:
    """Runs rendered build contexts against Redis."""

    def __init__(self, redis_client: redis.Redis, cache: ScriptCache) -> None:
        """Initialize executor.

        Args:
            redis_client: Async Redis client (decode_responses=True).
            cache: Loaded-script cache; owned by the caller.
        """
        self.redis = redis_client
        self.cache = cache

    async def execute(self, ctx: BuildContext) -> list[Any]:
        """Evaluate ctx as one atomic script and return the raw reply.

        A context holding a build error is answered locally with its error
        reply; Redis is not contacted.

        Raises:
            redis.RedisError: Connection problems or script runtime errors.
        """
        if ctx.error is not None:
            logger.debug("Script not sent: %s", ctx.error.message)
            return ctx.error_reply()
        return await self.run(ctx.render(), ctx.params)

    async def run(self, text: str, params: list[str]) -> list[Any]:
        """EVALSHA text by hash, loading it first when needed."""
        sha = script_sha(text)
        if sha in self.cache:
            try:
                logger.debug("Script cache HIT: %s", sha)
                return await self.redis.evalsha(sha, 0, *params)
            except NoScriptError:
                logger.info("Script %s evicted on server, reloading", sha)
                self.cache.forget(sha)
        await self._load(text, sha)
        return await self.redis.evalsha(sha, 0, *params)

    async def _load(self, text: str, sha: str) -> None:
        loaded = await self.redis.script_load(text)
        if loaded != sha:
            logger.warning("Server returned hash %s for script %s", loaded, sha)
        self.cache.mark_loaded(sha)
        logger.debug("Script LOAD: %s (%d cached)", sha, len(self.cache))
