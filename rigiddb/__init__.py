"""rigiddb: schema-validated object documents on Redis.

Each store operation compiles to one atomic Lua script that writes the
record, maintains its secondary indices and enforces uniqueness together.
"""

from rigiddb.domain.enums import ErrorCode, FieldKind, Method
from rigiddb.domain.exceptions import (
    InvalidPrefixException,
    InvalidRevisionException,
    RigidDBException,
)
from rigiddb.domain.results import Result
from rigiddb.infrastructure.redis.script_cache import ScriptCache, get_script_cache
from rigiddb.shared.logging import setup_logging
from rigiddb.store import Batch, RigidDB

__all__ = [
    "Batch",
    "ErrorCode",
    "FieldKind",
    "InvalidPrefixException",
    "InvalidRevisionException",
    "Method",
    "Result",
    "RigidDB",
    "RigidDBException",
    "ScriptCache",
    "get_script_cache",
    "setup_logging",
]

__version__ = "1.0.0"
