"""Query AST for the micro-search evaluator.

Queries arrive as plain JSON-style structures and are parsed into immutable
token dataclasses:

    "typescript"                                   -> TextToken
    {"FIELD": "title"}                             -> FieldToken (existence)
    {"FIELD": "author", "VALUE": "David"}          -> FieldValueToken
    {"FIELD": "published",
     "VALUE": {"GTE": "1994-01-01", "LTE": "1994-12-31"}}
                                                   -> FieldValueToken(Range)
    {"AND": [...]}, {"OR": [...]}                  -> AndToken / OrToken
    {"NOT": {"INCLUDE": ..., "EXCLUDE": ...}}      -> NotToken
    [token, token, ...]                            -> AndToken

Operator keys are case-insensitive.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Union

from micro_search.errors import QueryError
from micro_search.search.schema import INDEXED_FIELD


Scalar = Union[str, int, float]


@dataclass(frozen=True)
class Range:
    """Inclusive range bounds; either side may be omitted."""

    gte: Scalar | None = None
    lte: Scalar | None = None

    def __post_init__(self) -> None:
        if self.gte is None and self.lte is None:
            raise QueryError("Range requires at least one of GTE or LTE")
        for bound in (self.gte, self.lte):
            if bound is not None and (isinstance(bound, bool) or not isinstance(bound, (str, int, float))):
                msg = f"Range bounds must be strings or numbers, got {bound!r}"
                raise QueryError(msg)

    @property
    def is_numeric(self) -> bool:
        """True when every provided bound is a number."""
        bounds = [bound for bound in (self.gte, self.lte) if bound is not None]
        return all(isinstance(bound, (int, float)) for bound in bounds)


@dataclass(frozen=True)
class FieldToken:
    """Matches documents that have any indexed value for one of ``fields``."""

    fields: tuple[str, ...]


@dataclass(frozen=True)
class FieldValueToken:
    """Matches a literal or a range against the postings of ``fields``."""

    fields: tuple[str, ...]
    value: Scalar | Range


@dataclass(frozen=True)
class TextToken:
    """Bare query text matched against every non-verbatim field."""

    text: str


@dataclass(frozen=True)
class AndToken:
    clauses: tuple[Token, ...]


@dataclass(frozen=True)
class OrToken:
    clauses: tuple[Token, ...]


@dataclass(frozen=True)
class NotToken:
    include: Token
    exclude: Token


Token = Union[FieldToken, FieldValueToken, TextToken, AndToken, OrToken, NotToken]

TOKEN_TYPES = (FieldToken, FieldValueToken, TextToken, AndToken, OrToken, NotToken)

DEFAULT_QUERY: Token = FieldToken((INDEXED_FIELD,))


def parse_token(raw: Any) -> Token:
    """Parse a JSON-style query structure into a ``Token``."""

    if isinstance(raw, TOKEN_TYPES):
        return raw
    if isinstance(raw, str):
        if not raw.strip():
            raise QueryError("Query text cannot be empty")
        return TextToken(raw)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return TextToken(str(raw))
    if isinstance(raw, Mapping):
        return _parse_mapping(raw)
    if isinstance(raw, Sequence):
        return AndToken(_parse_clauses(raw, "query list"))
    msg = f"Unsupported query token: {raw!r}"
    raise QueryError(msg)


def _parse_mapping(raw: Mapping[str, Any]) -> Token:
    data = {str(key).upper(): value for key, value in raw.items()}
    operators = {"AND", "OR", "NOT"}.intersection(data)
    if len(operators) > 1 or (operators and "FIELD" in data):
        msg = f"Query token mixes operators: {sorted(data)}"
        raise QueryError(msg)

    if "AND" in data:
        return AndToken(_parse_clauses(data["AND"], "AND"))
    if "OR" in data:
        return OrToken(_parse_clauses(data["OR"], "OR"))
    if "NOT" in data:
        clause = data["NOT"]
        if not isinstance(clause, Mapping):
            raise QueryError("NOT expects an object with INCLUDE and EXCLUDE")
        parts = {str(key).upper(): value for key, value in clause.items()}
        if "INCLUDE" not in parts or "EXCLUDE" not in parts:
            raise QueryError("NOT requires both INCLUDE and EXCLUDE")
        return NotToken(include=parse_token(parts["INCLUDE"]), exclude=parse_token(parts["EXCLUDE"]))
    if "FIELD" in data:
        fields = _parse_fields(data["FIELD"])
        if "VALUE" not in data:
            return FieldToken(fields)
        return FieldValueToken(fields=fields, value=_parse_value(data["VALUE"]))

    msg = f"Unrecognized query token keys: {sorted(data)}"
    raise QueryError(msg)


def _parse_clauses(raw: Any, operator: str) -> tuple[Token, ...]:
    if isinstance(raw, (str, bytes)) or not isinstance(raw, Sequence):
        msg = f"{operator} expects a list of query tokens"
        raise QueryError(msg)
    if not raw:
        msg = f"{operator} requires at least one clause"
        raise QueryError(msg)
    return tuple(parse_token(item) for item in raw)


def _parse_fields(raw: Any) -> tuple[str, ...]:
    if isinstance(raw, str):
        names = [raw]
    elif isinstance(raw, Sequence):
        names = list(raw)
    else:
        names = []
    if not names or not all(isinstance(name, str) and name for name in names):
        msg = f"FIELD must be a field name or a list of field names, got {raw!r}"
        raise QueryError(msg)
    return tuple(names)


def _parse_value(raw: Any) -> Scalar | Range:
    if isinstance(raw, Range):
        return raw
    if isinstance(raw, Mapping):
        bounds = {str(key).upper(): value for key, value in raw.items()}
        unknown = set(bounds) - {"GTE", "LTE"}
        if unknown:
            msg = f"Unsupported range keys: {sorted(unknown)}"
            raise QueryError(msg)
        return Range(gte=bounds.get("GTE"), lte=bounds.get("LTE"))
    if isinstance(raw, bool) or not isinstance(raw, (str, int, float)):
        msg = f"VALUE must be a string, a number or a range, got {raw!r}"
        raise QueryError(msg)
    return raw
