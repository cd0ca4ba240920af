"""Validates and normalizes declarative schema definitions.

Accepts the shorthand forms callers write (``{"color": "string"}``,
``"fields": ["color"]``) and the expanded form produced by
Schema.to_dict(), and returns a closed Schema value. The first structural
problem found raises SchemaValidationException with a human-readable reason.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Mapping
from typing import Any

from rigiddb.core.constants import NAME_PATTERN
from rigiddb.domain.enums import FieldKind
from rigiddb.domain.exceptions import SchemaValidationException
from rigiddb.domain.schema import Collection, FieldType, Index, IndexField, Schema

_NAME_RE = re.compile(NAME_PATTERN)

_FIELD_TYPE_PROPS = frozenset({"type", "allowNull", "allowMulti"})
_INDEX_FIELD_PROPS = frozenset({"name", "caseInsensitive"})


def _is_name(value: Any) -> bool:
    return isinstance(value, str) and bool(_NAME_RE.match(value))


def normalize_schema(raw: Any) -> Schema:
    """Validate a schema definition and return its normalized form.

    The input is deep-copied first; the caller's object is never modified.

    Args:
        raw: Mapping of collection name -> {"definition": ..., "indices": ...}.

    Returns:
        Normalized Schema.

    Raises:
        SchemaValidationException: On the first structural problem found.
    """
    if not isinstance(raw, Mapping):
        raise SchemaValidationException("Invalid schema.")
    work = copy.deepcopy(dict(raw))
    if not work:
        raise SchemaValidationException("At least one collection must be defined.")
    collections = {
        name: _normalize_collection(name, body) for name, body in work.items()
    }
    return Schema(collections=collections)


def _normalize_collection(name: Any, body: Any) -> Collection:
    if not _is_name(name):
        raise SchemaValidationException(f"Invalid collection name: '{name}'")
    if not isinstance(body, Mapping):
        raise SchemaValidationException("Definition missing.")
    definition_raw = body.get("definition")
    if not isinstance(definition_raw, Mapping) or not definition_raw:
        raise SchemaValidationException("Definition missing.")

    definition = {
        field_name: _normalize_field_type(field_name, declared)
        for field_name, declared in definition_raw.items()
    }

    indices_raw = body.get("indices")
    if indices_raw is None:
        indices_raw = {}
    if not isinstance(indices_raw, Mapping):
        raise SchemaValidationException("Invalid indices definition.")

    indices: dict[str, Index] = {}
    seen_field_sets: dict[frozenset[str], str] = {}
    for index_name, index_raw in indices_raw.items():
        index = _normalize_index(index_name, index_raw, definition)
        # Two indices over the same fields would share index keys.
        if index.field_names in seen_field_sets:
            raise SchemaValidationException(
                f"Duplicate index definition: '{index_name}'"
            )
        seen_field_sets[index.field_names] = index_name
        indices[index_name] = index

    return Collection(name=name, definition=definition, indices=indices)


def _normalize_field_type(field_name: Any, declared: Any) -> FieldType:
    if not _is_name(field_name):
        raise SchemaValidationException(f"Invalid field name: '{field_name}'")
    if isinstance(declared, str):
        declared = {"type": declared}
    if not isinstance(declared, Mapping) or "type" not in declared:
        raise SchemaValidationException("Type definition missing.")

    kind = declared["type"]
    if kind not in FieldKind.values():
        raise SchemaValidationException(f"Invalid type: '{kind}'")

    allow_null = declared.get("allowNull", False)
    allow_multi = declared.get("allowMulti", False)
    unknown = set(declared) - _FIELD_TYPE_PROPS
    if unknown or not isinstance(allow_null, bool) or not isinstance(allow_multi, bool):
        raise SchemaValidationException(f"Invalid field option: '{field_name}'")

    return FieldType(
        kind=FieldKind(kind), allow_null=allow_null, allow_multi=allow_multi
    )


def _normalize_index(
    index_name: Any, index_raw: Any, definition: dict[str, FieldType]
) -> Index:
    if not _is_name(index_name):
        raise SchemaValidationException(f"Invalid index name: '{index_name}'")
    if not isinstance(index_raw, Mapping) or not isinstance(
        index_raw.get("unique"), bool
    ):
        raise SchemaValidationException("Invalid or missing index unique definition")

    fields_raw = index_raw.get("fields")
    if not isinstance(fields_raw, list) or not fields_raw:
        raise SchemaValidationException("Invalid or missing index fields definition")

    fields: list[IndexField] = []
    for field_raw in fields_raw:
        index_field = _normalize_index_field(field_raw, definition)
        if any(f.name == index_field.name for f in fields):
            raise SchemaValidationException(
                f"Duplicate index field: '{index_field.name}'"
            )
        fields.append(index_field)

    return Index(unique=index_raw["unique"], fields=tuple(fields))


def _normalize_index_field(
    field_raw: Any, definition: dict[str, FieldType]
) -> IndexField:
    if isinstance(field_raw, str):
        field_raw = {"name": field_raw, "caseInsensitive": False}
    if not isinstance(field_raw, Mapping):
        raise SchemaValidationException(f"Invalid index field: '{field_raw}'")

    for prop in field_raw:
        if prop not in _INDEX_FIELD_PROPS:
            raise SchemaValidationException(f"Invalid index field property: '{prop}'")

    name = field_raw.get("name")
    if not isinstance(name, str) or name not in definition:
        raise SchemaValidationException(f"Invalid index field: '{name}'")

    case_insensitive = field_raw.get("caseInsensitive", False)
    if not isinstance(case_insensitive, bool):
        raise SchemaValidationException(
            "Invalid index field property: 'caseInsensitive'"
        )
    return IndexField(name=name, case_insensitive=case_insensitive)
