"""Core constants: key layout parts, sentinel and delimiter values.

Single source of truth for how keys and composite index values are built.
Used by the key builders, the codec and the Lua prelude.
"""

# Separator between key components and between composite index parts.
KEY_SEP = ":"

# Reserved encoding of a NULL field value.
NULL_SENTINEL = "~"

# Key suffixes under {prefix}
SCHEMA_KEY = "_schema"
SCHEMA_REVISION_KEY = "_schemaRevision"

# Key suffixes under {prefix}:{collection}
NEXT_ID_KEY = "nextid"
IDS_KEY = "ids"
INDEX_KEY = "i"

# Prefix, collection, field and index names
NAME_PATTERN = r"^[A-Za-z0-9_-]+$"
