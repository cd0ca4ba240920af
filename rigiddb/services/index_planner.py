"""Index planner: canonical index key names and composite value expressions.

Both index maintenance (create/update/delete) and lookup (find) take their
key names and composite value expressions from here, so the field order,
case folding and delimiter escaping can never drift apart between writing
an index entry and reading it back.
"""

from __future__ import annotations

from collections.abc import Iterable

from rigiddb.domain.schema import Collection, Index, IndexField
from rigiddb.infrastructure.redis import keys
from rigiddb.scripting import ir


def sorted_fields(index: Index) -> list[IndexField]:
    """Index fields in lexicographic name order."""
    return sorted(index.fields, key=lambda f: f.name)


def sorted_field_names(index: Index) -> list[str]:
    return [f.name for f in sorted_fields(index)]


def index_key(prefix: str, collection: str, index: Index) -> str:
    """Name of the index hash, e.g. ``foo:car:i:color:mileage``."""
    return keys.index_key(prefix, collection, sorted_field_names(index))


def composite_expr(index: Index, record: ir.Expr) -> ir.Call:
    """Script expression computing the composite value of record for index.

    record must evaluate to a field -> encoded value table inside the
    script. The expression is evaluated there rather than in Python because
    the table may have been changed earlier in the same script.
    """
    fields = sorted_fields(index)
    return ir.Call(
        "composite",
        (
            record,
            ir.lit_strings([f.name for f in fields]),
            ir.ArrayTable(tuple(ir.Lit(f.case_insensitive) for f in fields)),
        ),
    )


def null_guard_expr(index: Index, record: ir.Expr) -> ir.Call:
    """Script expression that is true when any index field of record is NULL.

    NULLs never collide, so unique checks and unique entries are skipped
    while it holds.
    """
    return ir.Call("has_null", (record, ir.lit_strings(sorted_field_names(index))))


def match_index(
    collection: Collection, field_names: Iterable[str]
) -> tuple[str, Index] | None:
    """Return the index whose field set equals field_names, if any."""
    wanted = frozenset(field_names)
    for name, index in collection.sorted_indices():
        if index.field_names == wanted:
            return name, index
    return None
