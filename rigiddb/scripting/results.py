"""Decodes script replies into Result values."""

from __future__ import annotations

from typing import Any

from rigiddb.domain.enums import ErrorCode, Method
from rigiddb.domain.results import Result
from rigiddb.domain.schema import Schema
from rigiddb.services.codec import decode_record

_ERROR_REASONS = {
    ErrorCode.SCHEMA_EXISTS.value: "Schema already exists",
}


def _ids(values: list[Any]) -> list[int]:
    return [int(v) for v in values]


def decode_reply(reply: list[Any], schema: Schema | None) -> Result:
    """Turn ``[method, errorTag, ...payload]`` into a Result.

    Args:
        reply: Raw EVALSHA reply (or a locally built error reply).
        schema: Schema used to decode get payloads.

    Returns:
        Result with a typed val, or the error tag and failing method.
    """
    method, code, *payload = reply
    if code != ErrorCode.NO_ERROR.value:
        indices = None
        if code == ErrorCode.NOT_UNIQUE.value and payload:
            indices = [str(name) for name in payload[0]]
        return Result.failure(code, method, indices=indices, reason=_ERROR_REASONS.get(code))

    if method in (Method.NONE.value, Method.UPDATE.value, Method.DELETE.value):
        return Result.success(True)
    if method in (Method.CREATE.value, Method.SIZE.value, Method.CURRENT_ID.value):
        return Result.success(int(payload[0]))
    if method == Method.EXISTS.value:
        return Result.success(bool(int(payload[0])))
    if method in (Method.LIST.value, Method.FIND.value, Method.FIND_ALL.value):
        return Result.success(_ids(payload[0]))
    if method == Method.GET.value:
        flat, collection_name = payload
        collection = schema.get(collection_name) if schema else None
        if collection is None:
            return Result.failure(ErrorCode.UNKNOWN_COLLECTION.value, method)
        return Result.success(decode_record(collection, flat))
    if method == Method.SET_SCHEMA.value:
        return Result.success(payload[0])
    raise ValueError(f"Unexpected script reply for method {method!r}")
