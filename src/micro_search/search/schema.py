"""
Schema definition for the micro-search index.

Declares how each document field is indexed. Supports:
- TextField: word-split, normalized, n-gram expanded terms (the default)
- KeywordField: verbatim exact-match terms with lexicographic range queries
- NumericField: verbatim terms compared and sorted numerically
- StoredField: kept with the document but never indexed

Fields that are not declared are indexed as ``TextField``. Declarations can
grow over the life of an index (``put_many(..., verbatim_fields=[...])``
declares keyword fields on the fly) and are persisted in the snapshot.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


INDEXED_FIELD = "_indexed"
RESERVED_FIELDS = frozenset({INDEXED_FIELD})


class FieldType(str, Enum):
    """Types of fields supported in the schema."""

    TEXT = "text"
    KEYWORD = "keyword"
    NUMERIC = "numeric"
    STORED = "stored"


@dataclass(frozen=True)
class SchemaField(ABC):
    """Base class for all schema fields."""

    name: str
    indexed: bool = True

    @property
    @abstractmethod
    def field_type(self) -> FieldType:
        """Return the field type."""

    @property
    def is_verbatim(self) -> bool:
        """True when values are indexed as single exact tokens."""
        return self.field_type in (FieldType.KEYWORD, FieldType.NUMERIC)

    @property
    def is_numeric(self) -> bool:
        return self.field_type == FieldType.NUMERIC

    def to_dict(self) -> dict[str, Any]:
        """Serialize field definition to dict."""
        return {"name": self.name, "type": self.field_type.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SchemaField:
        """Deserialize field definition from dict."""
        field_type = FieldType(data["type"])
        name = data["name"]

        if field_type == FieldType.TEXT:
            return TextField(name)
        if field_type == FieldType.KEYWORD:
            return KeywordField(name)
        if field_type == FieldType.NUMERIC:
            return NumericField(name)
        if field_type == FieldType.STORED:
            return StoredField(name)
        msg = f"Unknown field type: {field_type}"
        raise ValueError(msg)


@dataclass(frozen=True)
class TextField(SchemaField):
    """
    Analyzed text field for full-text search.

    Values are split on word boundaries, lowercased, folded, expanded into
    n-grams and stopword-filtered. Use for titles, bodies, authors, tags.
    """

    @property
    def field_type(self) -> FieldType:
        return FieldType.TEXT


@dataclass(frozen=True)
class KeywordField(SchemaField):
    """
    Exact-match keyword (verbatim) field.

    The raw value becomes a single term. Use for:
    - ISO dates ("1994-10-31") queried with GTE/LTE ranges
    - Identifiers, categories, status codes
    """

    @property
    def field_type(self) -> FieldType:
        return FieldType.KEYWORD


@dataclass(frozen=True)
class NumericField(SchemaField):
    """
    Verbatim field whose terms are compared as numbers.

    Range queries and sorting on numeric fields never fall back to string
    ordering, so ``9 < 10`` holds regardless of the operand types.
    """

    @property
    def field_type(self) -> FieldType:
        return FieldType.NUMERIC


@dataclass(frozen=True)
class StoredField(SchemaField):
    """Stored-only field (not indexed)."""

    indexed: bool = field(default=False, init=False)

    @property
    def field_type(self) -> FieldType:
        return FieldType.STORED


@dataclass
class Schema:
    """
    Field declarations for a search index.

    Example:
        schema = Schema(
            fields=[
                KeywordField("published"),
                NumericField("publishedYear"),
                StoredField("cover_url"),
            ],
        )
    """

    fields: list[SchemaField] = field(default_factory=list)
    unique_field: str = "id"

    def __post_init__(self) -> None:
        """Validate schema after initialization."""
        if self.unique_field in RESERVED_FIELDS:
            msg = f"Unique field '{self.unique_field}' uses a reserved name"
            raise ValueError(msg)
        self._field_map: dict[str, SchemaField] = {}
        declared, self.fields = list(self.fields), []
        for schema_field in declared:
            self.declare(schema_field)

    def __getitem__(self, name: str) -> SchemaField:
        """Get the declared field, or the implicit text field."""
        if name == INDEXED_FIELD:
            return KeywordField(INDEXED_FIELD)
        return self._field_map.get(name) or TextField(name)

    def __contains__(self, name: str) -> bool:
        """Check if field is explicitly declared."""
        return name in self._field_map

    def __iter__(self) -> Iterator[SchemaField]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def declare(self, schema_field: SchemaField) -> None:
        """Add or replace a field declaration."""
        if schema_field.name in RESERVED_FIELDS:
            msg = f"Field '{schema_field.name}' uses a reserved name"
            raise ValueError(msg)
        if schema_field.name in self._field_map:
            self.fields = [f for f in self.fields if f.name != schema_field.name]
        self.fields.append(schema_field)
        self._field_map[schema_field.name] = schema_field

    def declare_verbatim(self, names: Iterable[str]) -> None:
        """Declare keyword fields unless the name already has a verbatim declaration."""
        for name in names:
            current = self._field_map.get(name)
            if current is None or not current.is_verbatim:
                self.declare(KeywordField(name))

    def is_verbatim(self, name: str) -> bool:
        return self[name].is_verbatim

    def copy(self) -> Schema:
        return Schema(fields=list(self.fields), unique_field=self.unique_field)

    def to_dict(self) -> dict[str, Any]:
        """Serialize schema to dict (fields sorted by name for stable snapshots)."""
        return {
            "unique_field": self.unique_field,
            "fields": [f.to_dict() for f in sorted(self.fields, key=lambda f: f.name)],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Schema:
        """Deserialize schema from dict."""
        fields = [SchemaField.from_dict(f) for f in data.get("fields", [])]
        return cls(fields=fields, unique_field=data.get("unique_field", "id"))
