"""Exceptions for rigiddb.

Only parameter errors that make an instance unusable (bad prefix, bad
revision) escape the public API. The other exceptions are raised while a
script is being built and are turned into Result values by the store.
"""

from typing import Any


class RigidDBException(Exception):
    """Base exception for all rigiddb errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. field, method).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class InvalidPrefixException(RigidDBException):
    """Raised when a store is constructed with an unusable key prefix."""

    def __init__(self, prefix: Any = None) -> None:
        super().__init__("Invalid prefix.", "INVALID_PREFIX", {"prefix": prefix})


class InvalidRevisionException(RigidDBException):
    """Raised when set_schema receives a revision that is not a non-negative int."""

    def __init__(self, revision: Any = None) -> None:
        super().__init__(
            "Invalid revision.", "INVALID_REVISION", {"revision": revision}
        )


class SchemaValidationException(RigidDBException):
    """Raised when a schema definition is structurally invalid.

    The message is the human-readable reason reported to callers.
    """

    def __init__(self, reason: str) -> None:
        """Initialize with the first validation failure found.

        Args:
            reason: Human-readable reason, e.g. "Definition missing.".
        """
        super().__init__(reason, "invalidSchema", {"reason": reason})

    @property
    def reason(self) -> str:
        return self.message


class OperationException(RigidDBException):
    """Raised when an operation cannot be compiled into a script.

    error_code is one of the ErrorCode values (e.g. "unknownCollection").
    """

    def __init__(self, code: str, method: str, message: str | None = None) -> None:
        """Initialize with error tag and operation name.

        Args:
            code: ErrorCode value.
            method: Method value of the failing operation.
            message: Optional description; defaults to "<method>: <code>".
        """
        super().__init__(message or f"{method}: {code}", code, {"method": method})

    @property
    def method(self) -> str:
        return self.details["method"]


class CodecException(RigidDBException):
    """Raised when a value cannot be encoded for its field type."""

    def __init__(self, code: str, field: str | None = None) -> None:
        """Initialize with error tag and optional field name.

        Args:
            code: "nullNotAllowed" or "wrongType".
            field: Optional field that failed encoding.
        """
        details = {"field": field} if field else {}
        message = f"Cannot encode field {field!r}: {code}" if field else code
        super().__init__(message, code, details)
