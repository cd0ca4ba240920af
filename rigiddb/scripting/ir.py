"""Intermediate representation for generated scripts.

Generators build a list of statements out of these nodes; a single renderer
(rigiddb.scripting.lua) turns them into Lua. Keeping the generator on this
level lets tests inspect what an operation does without parsing Lua text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

# Expressions


@dataclass(frozen=True)
class Lit:
    """Literal string, integer, boolean or nil (None)."""

    value: str | int | bool | None


@dataclass(frozen=True)
class Param:
    """Positional script argument (1-based, rendered as ARGV[n])."""

    index: int


@dataclass(frozen=True)
class Var:
    name: str


@dataclass(frozen=True)
class Call:
    """Call of a prelude routine, e.g. composite(rec, ...)."""

    func: str
    args: tuple[Expr, ...] = ()


@dataclass(frozen=True)
class RedisCall:
    """redis.call(command, ...) evaluated for its result."""

    command: str
    args: tuple[Expr, ...] = ()


@dataclass(frozen=True)
class Concat:
    parts: tuple[Expr, ...]


@dataclass(frozen=True)
class ArrayTable:
    items: tuple[Expr, ...] = ()


@dataclass(frozen=True)
class MapTable:
    """Table constructor with string keys, in the given order."""

    entries: tuple[tuple[str, Expr], ...] = ()


@dataclass(frozen=True)
class Item:
    """Table lookup: table[key]."""

    table: Expr
    key: Expr


@dataclass(frozen=True)
class BinOp:
    """Binary operator: ==, ~=, >, and, or."""

    op: str
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Not:
    operand: Expr


@dataclass(frozen=True)
class Length:
    operand: Expr


Expr = Union[Lit, Param, Var, Call, RedisCall, Concat, ArrayTable, MapTable, Item, BinOp, Not, Length]

# Statements


@dataclass(frozen=True)
class Local:
    """local name = value"""

    name: str
    value: Expr


@dataclass(frozen=True)
class Assign:
    """target = value (target is a variable or a table item)."""

    target: Var | Item
    value: Expr


@dataclass(frozen=True)
class Do:
    """Evaluate an expression for its side effects."""

    expr: Call | RedisCall


@dataclass(frozen=True)
class If:
    cond: Expr
    body: tuple[Stmt, ...]


@dataclass(frozen=True)
class Return:
    """Early return from the whole script.

    Any keys journaled by the batch are restored before returning.
    """

    value: Expr


@dataclass(frozen=True)
class Block:
    """Lexical scope for one operation (do ... end)."""

    body: tuple[Stmt, ...] = field(default_factory=tuple)


Stmt = Union[Local, Assign, Do, If, Return, Block]


def lit_strings(values: list[str] | tuple[str, ...]) -> ArrayTable:
    """Array table of string literals."""
    return ArrayTable(tuple(Lit(v) for v in values))
