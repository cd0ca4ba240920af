"""Normalized schema value types.

Produced once by rigiddb.services.schema_validator. Everything downstream
(codec, index planner, script generator) consumes only these types, never
the caller's nested dicts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from rigiddb.domain.enums import FieldKind


@dataclass(frozen=True)
class FieldType:
    """Type of one collection field.

    allow_multi is reserved: it is validated and persisted but not used by
    the codec or the generator.
    """

    kind: FieldKind
    allow_null: bool = False
    allow_multi: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind.value,
            "allowNull": self.allow_null,
            "allowMulti": self.allow_multi,
        }


@dataclass(frozen=True)
class IndexField:
    """One field participating in an index."""

    name: str
    case_insensitive: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "caseInsensitive": self.case_insensitive}


@dataclass(frozen=True)
class Index:
    """Secondary index over one or more fields (declaration order kept)."""

    unique: bool
    fields: tuple[IndexField, ...]

    @property
    def field_names(self) -> frozenset[str]:
        return frozenset(f.name for f in self.fields)

    def to_dict(self) -> dict[str, Any]:
        return {"unique": self.unique, "fields": [f.to_dict() for f in self.fields]}


@dataclass(frozen=True)
class Collection:
    """Named record type: field definitions plus indices."""

    name: str
    definition: dict[str, FieldType]
    indices: dict[str, Index] = field(default_factory=dict)

    @property
    def field_names(self) -> frozenset[str]:
        return frozenset(self.definition)

    def unique_indices(self) -> list[tuple[str, Index]]:
        """Return (name, index) pairs for unique indices, sorted by name."""
        return [(n, i) for n, i in sorted(self.indices.items()) if i.unique]

    def sorted_indices(self) -> list[tuple[str, Index]]:
        """Return all (name, index) pairs sorted by name."""
        return sorted(self.indices.items())

    def to_dict(self) -> dict[str, Any]:
        return {
            "definition": {n: t.to_dict() for n, t in self.definition.items()},
            "indices": {n: i.to_dict() for n, i in self.indices.items()},
        }


@dataclass(frozen=True)
class Schema:
    """Closed set of collections for one store prefix."""

    collections: dict[str, Collection]

    def get(self, name: str) -> Collection | None:
        return self.collections.get(name)

    def to_dict(self) -> dict[str, Any]:
        """Canonical expanded form; normalizing it again gives an equal Schema."""
        return {n: c.to_dict() for n, c in self.collections.items()}
