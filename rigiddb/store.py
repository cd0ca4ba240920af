"""Public store API: schema management, CRUD, index lookup and batches.

Every call compiles to one Lua script that Redis runs atomically. Results
are always Result values; only a bad prefix (constructor) or a bad revision
(set_schema) raise.

Example:
    store = RigidDB("shop")
    await store.set_schema(1, {"car": {"definition": {"color": "string"}}})
    created = await store.create("car", {"color": "blue"})
    fetched = await store.get("car", created.val)
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import re
from collections.abc import Callable
from typing import Any

import redis.asyncio as redis

from rigiddb.core.config import Settings
from rigiddb.core.constants import NAME_PATTERN
from rigiddb.domain.enums import ErrorCode, Method
from rigiddb.domain.exceptions import (
    InvalidPrefixException,
    InvalidRevisionException,
    SchemaValidationException,
)
from rigiddb.domain.results import Result
from rigiddb.domain.schema import Schema
from rigiddb.infrastructure.redis import keys
from rigiddb.infrastructure.redis.client import create_redis_client
from rigiddb.infrastructure.redis.script_cache import (
    ScriptCache,
    ScriptExecutor,
    get_script_cache,
)
from rigiddb.scripting.context import BuildContext
from rigiddb.scripting.generator import ScriptGenerator
from rigiddb.scripting.results import decode_reply
from rigiddb.services.hash_service import HashService
from rigiddb.services.schema_validator import normalize_schema

logger = logging.getLogger(__name__)

_PREFIX_RE = re.compile(NAME_PATTERN)


class Batch:
    """Collects operations for RigidDB.multi() into one shared script.

    Methods return nothing; the outcome of the whole batch is the Result of
    multi(). After the first build error the remaining calls are ignored.
    """

    def __init__(self, generator: ScriptGenerator, ctx: BuildContext) -> None:
        self._generator = generator
        self._ctx = ctx

    def create(self, collection: str, attrs: dict[str, Any]) -> None:
        self._generator.create(self._ctx, collection, attrs)

    def update(self, collection: str, record_id: int, attrs: dict[str, Any]) -> None:
        self._generator.update(self._ctx, collection, record_id, attrs)

    def delete(self, collection: str, record_id: int) -> None:
        self._generator.delete(self._ctx, collection, record_id)

    def get(self, collection: str, record_id: int) -> None:
        self._generator.get(self._ctx, collection, record_id)

    def exists(self, collection: str, record_id: int) -> None:
        self._generator.exists(self._ctx, collection, record_id)


class RigidDB:
    """Schema-validated object store on one Redis key prefix."""

    def __init__(
        self,
        prefix: str,
        redis_client: redis.Redis | None = None,
        settings: Settings | None = None,
        script_cache: ScriptCache | None = None,
        hash_service: HashService | None = None,
    ) -> None:
        """Initialize the store. No Redis call is made here.

        Args:
            prefix: Key prefix; letters, digits, "_" and "-" only.
            redis_client: Optional client (DI/testing); built from settings otherwise.
            settings: Optional settings used when redis_client is not given.
            script_cache: Optional loaded-script cache; defaults to the process-wide one.
            hash_service: Optional hash service for schema hashing.

        Raises:
            InvalidPrefixException: If prefix is missing or malformed.
        """
        if not isinstance(prefix, str) or not _PREFIX_RE.match(prefix):
            raise InvalidPrefixException(prefix)
        self.prefix = prefix
        self.redis = redis_client if redis_client is not None else create_redis_client(settings)
        self.executor = ScriptExecutor(self.redis, script_cache or get_script_cache())
        self.hash_service = hash_service or HashService()

        self._schema: Schema | None = None
        self._revision: int | None = None
        self._schema_hash: str | None = None
        self._generator: ScriptGenerator | None = None
        # Stored text that failed to load; set_schema may overwrite it.
        self._bad_schema_text: str | None = None
        self._schema_lock = asyncio.Lock()

    # Schema

    def _apply_schema(self, schema: Schema, revision: int, schema_hash: str) -> None:
        self._schema = schema
        self._revision = revision
        self._schema_hash = schema_hash
        self._generator = ScriptGenerator(self.prefix, schema)
        self._bad_schema_text = None

    async def _load_schema(self) -> None:
        text, revision = await self.redis.mget(
            keys.schema_key(self.prefix), keys.schema_revision_key(self.prefix)
        )
        if text is None:
            return
        try:
            schema = normalize_schema(json.loads(text))
            rev = int(revision)
        except (ValueError, TypeError, SchemaValidationException) as e:
            logger.warning("Stored schema for prefix %s is unusable: %s", self.prefix, e)
            self._bad_schema_text = text
            return
        self._apply_schema(schema, rev, self.hash_service.algorithm.hash(text))
        logger.debug("Loaded schema revision %s for prefix %s", rev, self.prefix)

    async def _ensure_schema(self, method: Method) -> ScriptGenerator | Result:
        """Load the schema once.

        Returns the generator for the loaded schema, or a failure Result when
        the schema is missing or unusable.
        """
        if self._schema is None:
            async with self._schema_lock:
                if self._schema is None and self._bad_schema_text is None:
                    await self._load_schema()
        if self._bad_schema_text is not None:
            return Result.failure(ErrorCode.BAD_SAVED_SCHEMA.value, method.value)
        if self._generator is None:
            return Result.failure(ErrorCode.SCHEMA_MISSING.value, method.value)
        return self._generator

    async def set_schema(self, revision: int, schema: dict[str, Any]) -> Result:
        """Persist the schema for this prefix (first write wins).

        Args:
            revision: Non-negative revision tag stored alongside the schema.
            schema: Declarative schema; shorthand forms are accepted.

        Returns:
            Result whose val is the schema hash, or invalidSchema (with reason)
            or schemaExists.

        Raises:
            InvalidRevisionException: If revision is not a non-negative int.
        """
        if isinstance(revision, bool) or not isinstance(revision, int) or revision < 0:
            raise InvalidRevisionException(revision)
        method = Method.SET_SCHEMA
        try:
            normalized = normalize_schema(schema)
        except SchemaValidationException as e:
            return Result.failure(ErrorCode.INVALID_SCHEMA.value, method.value, reason=e.reason)

        text = self.hash_service.canonical_json(normalized.to_dict())
        digest = self.hash_service.algorithm.hash(text)
        # Re-read from canonical text so every instance sees the same field order.
        canonical = normalize_schema(json.loads(text))

        async with self._schema_lock:
            if self._schema is None and self._bad_schema_text is None:
                await self._load_schema()
            ctx = BuildContext()
            ScriptGenerator(self.prefix, canonical).set_schema(
                ctx, text, revision, digest, replaceable=self._bad_schema_text
            )
            result = decode_reply(await self.executor.execute(ctx), canonical)
            if result.ok:
                self._apply_schema(canonical, revision, digest)
                logger.info("Schema revision %s set for prefix %s", revision, self.prefix)
        return result

    async def get_schema(self) -> Result:
        """Return {"revision": int, "schema": expanded schema dict}."""
        loaded = await self._ensure_schema(Method.GET_SCHEMA)
        if isinstance(loaded, Result):
            return loaded
        return Result.success({"revision": self._revision, "schema": loaded.schema.to_dict()})

    async def get_schema_hash(self) -> Result:
        """Return the SHA1 of the stored canonical schema text."""
        loaded = await self._ensure_schema(Method.GET_SCHEMA_HASH)
        if isinstance(loaded, Result):
            return loaded
        return Result.success(self._schema_hash)

    # Operations

    async def _execute(
        self, method: Method, build: Callable[[ScriptGenerator, BuildContext], Any]
    ) -> Result:
        loaded = await self._ensure_schema(method)
        if isinstance(loaded, Result):
            return loaded
        ctx = BuildContext()
        outcome = build(loaded, ctx)
        if inspect.isawaitable(outcome):
            await outcome
        reply = await self.executor.execute(ctx)
        return decode_reply(reply, loaded.schema)

    async def create(self, collection: str, attrs: dict[str, Any]) -> Result:
        """Create a record; every declared field must be given. val is the new id."""
        return await self._execute(Method.CREATE, lambda g, c: g.create(c, collection, attrs))

    async def update(self, collection: str, record_id: int, attrs: dict[str, Any]) -> Result:
        """Update some fields of a record. val is True."""
        return await self._execute(
            Method.UPDATE, lambda g, c: g.update(c, collection, record_id, attrs)
        )

    async def delete(self, collection: str, record_id: int) -> Result:
        return await self._execute(Method.DELETE, lambda g, c: g.delete(c, collection, record_id))

    async def get(self, collection: str, record_id: int) -> Result:
        """Fetch a record. val is a dict of decoded field values."""
        return await self._execute(Method.GET, lambda g, c: g.get(c, collection, record_id))

    async def exists(self, collection: str, record_id: int) -> Result:
        """val is True when the record exists; never fails on absence."""
        return await self._execute(Method.EXISTS, lambda g, c: g.exists(c, collection, record_id))

    async def list(self, collection: str) -> Result:
        """val is the list of live ids in creation order."""
        return await self._execute(Method.LIST, lambda g, c: g.list(c, collection))

    async def size(self, collection: str) -> Result:
        return await self._execute(Method.SIZE, lambda g, c: g.size(c, collection))

    async def current_id(self, collection: str) -> Result:
        """val is the last id handed out (0 before the first create)."""
        return await self._execute(Method.CURRENT_ID, lambda g, c: g.current_id(c, collection))

    async def find(self, collection: str, attrs: dict[str, Any]) -> Result:
        """Ids matching attrs; attrs must name exactly the fields of one index.

        val is always a list, empty when nothing matches.
        """
        return await self._execute(Method.FIND, lambda g, c: g.find(c, collection, attrs))

    async def find_all(self, collection: str, attrs: dict[str, Any]) -> Result:
        """Same lookup as find(), reported under the findAll method tag."""
        return await self._execute(
            Method.FIND_ALL, lambda g, c: g.find(c, collection, attrs, method=Method.FIND_ALL)
        )

    async def multi(self, build: Callable[[Batch], Any]) -> Result:
        """Run several operations as one atomic script.

        build receives a Batch and may be a plain function or a coroutine
        function. The Result is the reply of the last operation (True for an
        empty batch). A build error stops the batch before anything is sent;
        a failure inside the script undoes the batch's earlier writes.
        """
        return await self._execute(Method.MULTI, lambda g, c: build(Batch(g, c)))

    async def quit(self) -> None:
        """Close the Redis connection."""
        await self.redis.aclose()
