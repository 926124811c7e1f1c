"""micro-search: an embeddable document search engine with snapshot persistence."""

from micro_search.config import Settings
from micro_search.domain.search import PageSpec, Paging, QueryRequest, QueryResponse, SortDirection, SortSpec
from micro_search.engine import IndexState, MicroSearch
from micro_search.errors import (
    DeserializationError,
    IndexingError,
    MicroSearchError,
    NotFoundError,
    QueryError,
    StorageError,
)
from micro_search.search.schema import KeywordField, NumericField, Schema, StoredField, TextField
from micro_search.storage.blob_store import BlobStore, LocalBlobStore, MemoryBlobStore


__all__ = [
    "BlobStore",
    "DeserializationError",
    "IndexState",
    "IndexingError",
    "KeywordField",
    "LocalBlobStore",
    "MemoryBlobStore",
    "MicroSearch",
    "MicroSearchError",
    "NotFoundError",
    "NumericField",
    "PageSpec",
    "Paging",
    "QueryError",
    "QueryRequest",
    "QueryResponse",
    "Schema",
    "Settings",
    "SortDirection",
    "SortSpec",
    "StorageError",
    "StoredField",
    "TextField",
]
