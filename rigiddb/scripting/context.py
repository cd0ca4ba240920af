"""Build context threaded through one script generation pass."""

from __future__ import annotations

from dataclasses import dataclass, field

from rigiddb.domain.exceptions import OperationException
from rigiddb.scripting import ir
from rigiddb.scripting.lua import render_script


@dataclass
class BuildContext:
    """Accumulating state for one script: IR body, params, sticky error.

    A batch shares one context across all its operations. Once an error is
    recorded, later operations are skipped and nothing is sent to Redis.
    """

    body: list[ir.Stmt] = field(default_factory=list)
    params: list[str] = field(default_factory=list)
    error: OperationException | None = None
    operations: int = 0

    @property
    def failed(self) -> bool:
        return self.error is not None

    def push_param(self, value: str) -> ir.Param:
        """Append a positional argument and return its ARGV reference."""
        self.params.append(value)
        return ir.Param(len(self.params))

    def emit(self, *stmts: ir.Stmt) -> None:
        self.body.extend(stmts)

    def fail(self, error: OperationException) -> None:
        """Record the first error; later ones are ignored."""
        if self.error is None:
            self.error = error

    def render(self) -> str:
        return render_script(self.body, journal=self.operations > 1)

    def error_reply(self) -> list[str]:
        """Reply shaped like a script reply, for short-circuited contexts."""
        if self.error is None:
            raise ValueError("Context holds no build error")
        return [self.error.method, self.error.error_code]
