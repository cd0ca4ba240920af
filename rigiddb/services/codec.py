"""Attribute codec: typed values <-> Redis hash strings.

Redis stores only strings, so every field kind has a text form. NULL is the
sentinel "~"; a real string made only of sentinel characters is stored with
one extra sentinel in front so the two can be told apart on decode.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from rigiddb.core.constants import NULL_SENTINEL
from rigiddb.domain.enums import ErrorCode, FieldKind
from rigiddb.domain.exceptions import CodecException
from rigiddb.domain.schema import Collection, FieldType

_SENTINEL_ONLY_RE = re.compile(f"^{re.escape(NULL_SENTINEL)}+$")
_INT_TEXT_RE = re.compile(r"^[+-]?\d+$", re.ASCII)


def _to_int(value: Any) -> int:
    """Truncate numbers (and integer text) to int; reject everything else."""
    if isinstance(value, bool):
        raise CodecException(ErrorCode.WRONG_TYPE.value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    if isinstance(value, str) and _INT_TEXT_RE.match(value.strip()):
        return int(value.strip())
    raise CodecException(ErrorCode.WRONG_TYPE.value)


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError as e:
            raise CodecException(ErrorCode.WRONG_TYPE.value) from e
    raise CodecException(ErrorCode.WRONG_TYPE.value)


def encode(field_type: FieldType, value: Any) -> str:
    """Encode one value for storage.

    Args:
        field_type: Declared type of the field.
        value: Application value (None for NULL).

    Returns:
        String form stored in the record hash.

    Raises:
        CodecException: nullNotAllowed for None on a non-nullable field,
            wrongType when the value does not fit the field kind.
    """
    if value is None:
        if not field_type.allow_null:
            raise CodecException(ErrorCode.NULL_NOT_ALLOWED.value)
        return NULL_SENTINEL

    kind = field_type.kind
    if kind is FieldKind.BOOLEAN:
        if not isinstance(value, bool):
            raise CodecException(ErrorCode.WRONG_TYPE.value)
        return "true" if value else "false"
    if kind is FieldKind.INT:
        return str(_to_int(value))
    if kind is FieldKind.STRING:
        if not isinstance(value, str):
            raise CodecException(ErrorCode.WRONG_TYPE.value)
        if _SENTINEL_ONLY_RE.match(value):
            return NULL_SENTINEL + value
        return value
    if kind is FieldKind.DATE:
        return _to_datetime(value).isoformat()
    if kind is FieldKind.TIMESTAMP:
        return str(_to_int(value))
    raise CodecException(ErrorCode.WRONG_TYPE.value)


def decode(field_type: FieldType, text: str) -> Any:
    """Inverse of encode(). The sentinel always decodes to None."""
    if text == NULL_SENTINEL:
        return None

    kind = field_type.kind
    if kind is FieldKind.BOOLEAN:
        return text == "true"
    if kind in (FieldKind.INT, FieldKind.TIMESTAMP):
        return int(text)
    if kind is FieldKind.DATE:
        return datetime.fromisoformat(text)
    if _SENTINEL_ONLY_RE.match(text):
        return text[len(NULL_SENTINEL):]
    return text


def encode_attributes(collection: Collection, attrs: Mapping[str, Any]) -> dict[str, str]:
    """Encode the known fields of attrs, in attrs order.

    Names not declared in the collection are dropped.

    Raises:
        CodecException: From encode(), with the failing field attached.
    """
    encoded: dict[str, str] = {}
    for name, value in attrs.items():
        field_type = collection.definition.get(name)
        if field_type is None:
            continue
        try:
            encoded[name] = encode(field_type, value)
        except CodecException as e:
            raise CodecException(e.error_code, field=name) from e
    return encoded


def decode_record(collection: Collection, flat: list[str]) -> dict[str, Any]:
    """Decode a flat HGETALL reply ([field, value, field, value, ...]).

    Fields no longer declared in the collection are skipped.
    """
    record: dict[str, Any] = {}
    for name, text in zip(flat[::2], flat[1::2]):
        field_type = collection.definition.get(name)
        if field_type is not None:
            record[name] = decode(field_type, text)
    return record
