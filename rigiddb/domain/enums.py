"""Domain enumerations for rigiddb.

Enums represent fixed sets of values shared by the validator, the codec,
the script generator and the result decoder.
"""

from enum import Enum


class FieldKind(str, Enum):
    """Storable field types."""

    STRING = "string"
    INT = "int"
    BOOLEAN = "boolean"
    DATE = "date"
    TIMESTAMP = "timestamp"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid kind values as strings.

        Returns:
            List of enum value strings (e.g. for validation messages).
        """
        return [kind.value for kind in cls]


class ErrorCode(str, Enum):
    """Error tags carried by results and by generated script replies."""

    NO_ERROR = "noError"
    # schema level
    SCHEMA_MISSING = "schemaMissing"
    BAD_SAVED_SCHEMA = "badSavedSchema"
    INVALID_SCHEMA = "invalidSchema"
    SCHEMA_EXISTS = "schemaExists"
    # detected while building a script
    UNKNOWN_COLLECTION = "unknownCollection"
    BAD_PARAMETER = "badParameter"
    NULL_NOT_ALLOWED = "nullNotAllowed"
    WRONG_TYPE = "wrongType"
    UNKNOWN_INDEX = "unknownIndex"
    # detected by the script
    NOT_FOUND = "notFound"
    NOT_UNIQUE = "notUnique"


class Method(str, Enum):
    """Operation tags; also the first element of every script reply."""

    NONE = "none"
    SET_SCHEMA = "setSchema"
    GET_SCHEMA = "getSchema"
    GET_SCHEMA_HASH = "getSchemaHash"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    GET = "get"
    EXISTS = "exists"
    LIST = "list"
    SIZE = "size"
    FIND = "find"
    FIND_ALL = "findAll"
    CURRENT_ID = "currentId"
    MULTI = "multi"
