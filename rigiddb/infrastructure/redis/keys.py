"""Redis key builders. Single place for the persisted key layout.

Layout under one prefix:

    {prefix}:_schema                  canonical schema JSON
    {prefix}:_schemaRevision          revision tag
    {prefix}:{collection}:nextid      id counter
    {prefix}:{collection}:ids         sorted set of live ids
    {prefix}:{collection}:{id}        record hash
    {prefix}:{collection}:i:{fields}  index hash (plus promoted {..}:{value} sets)

Prefix, collection and field names are validated against NAME_PATTERN
before they reach these builders, so they never contain KEY_SEP.
"""

from rigiddb.core.constants import (
    IDS_KEY,
    INDEX_KEY,
    KEY_SEP,
    NEXT_ID_KEY,
    SCHEMA_KEY,
    SCHEMA_REVISION_KEY,
)


def _join(*parts: str) -> str:
    return KEY_SEP.join(parts)


def schema_key(prefix: str) -> str:
    """Key holding the serialized schema."""
    return _join(prefix, SCHEMA_KEY)


def schema_revision_key(prefix: str) -> str:
    """Key holding the schema revision tag."""
    return _join(prefix, SCHEMA_REVISION_KEY)


def collection_key(prefix: str, collection: str) -> str:
    """Common prefix of every key of one collection."""
    return _join(prefix, collection)


def next_id_key(prefix: str, collection: str) -> str:
    return _join(collection_key(prefix, collection), NEXT_ID_KEY)


def ids_key(prefix: str, collection: str) -> str:
    return _join(collection_key(prefix, collection), IDS_KEY)


def record_key_prefix(prefix: str, collection: str) -> str:
    """Record keys are this string followed by the id."""
    return collection_key(prefix, collection) + KEY_SEP


def index_key(prefix: str, collection: str, sorted_field_names: list[str]) -> str:
    """Index hash key; field names must already be sorted."""
    return _join(collection_key(prefix, collection), INDEX_KEY, *sorted_field_names)
