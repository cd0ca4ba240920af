"""Tagged result values returned by every public store operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Result:
    """Outcome of a store call.

    Successful calls carry only val. Failed calls carry val=False, the error
    tag, the failing method and, depending on the error, the offending index
    names (notUnique) or a human-readable reason (invalidSchema).
    """

    val: Any = True
    err: str | None = None
    method: str | None = None
    indices: list[str] | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.err is None

    @classmethod
    def success(cls, val: Any = True) -> Result:
        return cls(val=val)

    @classmethod
    def failure(
        cls,
        err: str,
        method: str,
        indices: list[str] | None = None,
        reason: str | None = None,
    ) -> Result:
        return cls(val=False, err=err, method=method, indices=indices, reason=reason)

    def to_dict(self) -> dict[str, Any]:
        """Plain dict form, omitting unset keys."""
        if self.ok:
            return {"val": self.val}
        out: dict[str, Any] = {"val": False, "err": self.err, "method": self.method}
        if self.indices is not None:
            out["indices"] = list(self.indices)
        if self.reason is not None:
            out["reason"] = self.reason
        return out
