"""Ranking, paging and materialization of query matches."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import copy
import math
from typing import Any

from micro_search.domain.search import PageSpec, Paging, QueryRequest, QueryResponse, SortSpec
from micro_search.search.inverted_index import InvertedIndex, as_number
from micro_search.search.schema import INDEXED_FIELD


DEFAULT_PAGE_SIZE = 20


def _sort_value(index: InvertedIndex, doc_id: str, field_name: str) -> Any:
    stored = index.get_document(doc_id)
    if stored is None:
        return None
    if field_name == INDEXED_FIELD:
        return stored.indexed_at
    value = stored.fields.get(field_name)
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        value = value[0] if value else None
    return value


def rank(index: InvertedIndex, scores: Mapping[str, float], sort: SortSpec | None = None) -> list[str]:
    """Order matched document ids.

    Without a sort directive results are ordered by descending score. With
    one they are ordered on the stored field value, numerically when the
    field is declared numeric or every present value is a number, and
    lexicographically otherwise. Documents lacking the field go last. Ties
    always keep indexing order.
    """

    ordered = sorted(scores, key=index.sequence_of)
    if sort is None:
        return sorted(ordered, key=lambda doc_id: -scores[doc_id])

    values = {doc_id: _sort_value(index, doc_id, sort.field) for doc_id in ordered}
    present = {doc_id: value for doc_id, value in values.items() if value is not None}
    numeric = index.schema[sort.field].is_numeric or all(
        isinstance(value, (int, float)) and not isinstance(value, bool) for value in present.values()
    )

    keys: dict[str, Any] = {}
    for doc_id, value in present.items():
        if numeric:
            number = as_number(value)
            if number is not None:
                keys[doc_id] = number
        else:
            keys[doc_id] = str(value)

    sortable = sorted(keys, key=keys.__getitem__, reverse=sort.descending)
    missing = [doc_id for doc_id in ordered if doc_id not in keys]
    return sortable + missing


def paginate(doc_ids: Sequence[str], page: PageSpec | None, default_size: int = DEFAULT_PAGE_SIZE) -> tuple[list[str], Paging]:
    """Slice ``doc_ids`` to the requested 0-based page."""

    number = page.number if page is not None else 0
    size = page.size if page is not None and page.size is not None else default_size
    offset = number * size
    pages = math.ceil(len(doc_ids) / size) if doc_ids else 0
    return list(doc_ids[offset : offset + size]), Paging(pages=pages, offset=offset, size=size)


def materialize(index: InvertedIndex, doc_ids: Sequence[str]) -> list[dict[str, Any]]:
    """Return deep copies of the stored caller documents."""
    documents: list[dict[str, Any]] = []
    for doc_id in doc_ids:
        stored = index.get_document(doc_id)
        if stored is not None:
            documents.append(copy.deepcopy(stored.fields))
    return documents


class ResultPipeline:
    """Turns evaluator scores into a paged ``QueryResponse``."""

    def __init__(self, index: InvertedIndex, *, default_page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self.index = index
        self.default_page_size = default_page_size

    def run(self, scores: Mapping[str, float], request: QueryRequest) -> QueryResponse[dict[str, Any]]:
        ordered = rank(self.index, scores, request.sort)
        page_ids, paging = paginate(ordered, request.page, self.default_page_size)
        return QueryResponse(results=materialize(self.index, page_ids), paging=paging, total=len(ordered))
