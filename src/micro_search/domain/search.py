"""Domain models for query requests and responses.

Value objects are immutable pydantic models. They accept the upper-case wire
keys used by JSON callers (``QUERY``, ``SORT``, ``PAGE``...) as well as the
Python attribute names.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from micro_search.search.query import DEFAULT_QUERY, Token, parse_token


DocumentT = TypeVar("DocumentT")


class WireModel(BaseModel):
    """Frozen request model whose keys are matched case-insensitively; unknown keys are rejected."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def _upper_keys(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            return {str(key).upper(): value for key, value in data.items()}
        return data


class SortDirection(str, Enum):
    ASCENDING = "ASCENDING"
    DESCENDING = "DESCENDING"


class SortSpec(WireModel):
    """Value object describing a sort directive on a stored field."""

    field: str = Field(alias="FIELD", min_length=1)
    direction: SortDirection = Field(default=SortDirection.ASCENDING, alias="DIRECTION")

    @property
    def descending(self) -> bool:
        return self.direction == SortDirection.DESCENDING


class PageSpec(WireModel):
    """Value object describing a 0-based page request."""

    number: int = Field(default=0, ge=0, alias="NUMBER")
    size: int | None = Field(default=None, ge=1, alias="SIZE")


class QueryRequest(WireModel):
    """A query request; omitting ``query`` returns every document."""

    query: Any = Field(default=None, alias="QUERY")
    sort: SortSpec | None = Field(default=None, alias="SORT")
    page: PageSpec | None = Field(default=None, alias="PAGE")

    def token(self) -> Token:
        """Return the parsed query AST (the all-documents query when unset)."""
        if self.query is None:
            return DEFAULT_QUERY
        return parse_token(self.query)


class Paging(BaseModel):
    """Paging metadata of a query response."""

    model_config = ConfigDict(frozen=True)

    pages: int
    offset: int
    size: int


class QueryResponse(BaseModel, Generic[DocumentT]):
    """Value object for a complete query response."""

    model_config = ConfigDict(frozen=True)

    results: list[DocumentT]
    paging: Paging
    total: int = 0
