"""Domain layer - immutable request and response value objects (Pydantic)."""

from micro_search.domain.search import PageSpec, Paging, QueryRequest, QueryResponse, SortDirection, SortSpec


__all__ = [
    "PageSpec",
    "Paging",
    "QueryRequest",
    "QueryResponse",
    "SortDirection",
    "SortSpec",
]
