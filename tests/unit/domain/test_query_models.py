"""Unit tests for the query request and response models."""

from pydantic import ValidationError
import pytest

from micro_search.domain.search import (
    PageSpec,
    Paging,
    QueryRequest,
    QueryResponse,
    SortDirection,
    SortSpec,
)
from micro_search.search.query import DEFAULT_QUERY, FieldValueToken, TextToken


pytestmark = pytest.mark.unit


class TestQueryRequest:
    def test_wire_keys(self):
        request = QueryRequest.model_validate(
            {
                "QUERY": {"FIELD": "author", "VALUE": "martin"},
                "SORT": {"FIELD": "published", "DIRECTION": "DESCENDING"},
                "PAGE": {"NUMBER": 2, "SIZE": 5},
            }
        )

        assert request.sort == SortSpec(field="published", direction=SortDirection.DESCENDING)
        assert request.sort.descending is True
        assert request.page == PageSpec(number=2, size=5)
        assert request.token() == FieldValueToken(fields=("author",), value="martin")

    def test_python_names(self):
        request = QueryRequest(query="refactoring", page=PageSpec(size=3))

        assert request.token() == TextToken(text="refactoring")
        assert request.page.number == 0

    def test_defaults(self):
        request = QueryRequest()

        assert request.token() == DEFAULT_QUERY
        assert request.sort is None
        assert request.page is None

    def test_models_are_frozen(self):
        request = QueryRequest()

        with pytest.raises(ValidationError):
            request.query = "x"

    @pytest.mark.parametrize(
        "payload",
        [
            {"PAGE": {"NUMBER": -1}},
            {"PAGE": {"SIZE": 0}},
            {"SORT": {"FIELD": ""}},
            {"SORT": {"FIELD": "title", "DIRECTION": "SIDEWAYS"}},
            {"QUERY": "x", "LIMIT": 5},
            {"PAGE": {"NUMBER": 1, "OFFSET": 3}},
            {"SORT": {"FIELD": "title", "ORDER": "DESCENDING"}},
        ],
    )
    def test_invalid_payloads(self, payload):
        with pytest.raises(ValidationError):
            QueryRequest.model_validate(payload)

    def test_keys_are_case_insensitive(self):
        request = QueryRequest.model_validate(
            {"Query": "refactoring", "sort": {"field": "published", "Direction": "DESCENDING"}, "Page": {"size": 5}}
        )

        assert request.token() == TextToken(text="refactoring")
        assert request.sort == SortSpec(field="published", direction=SortDirection.DESCENDING)
        assert request.page == PageSpec(size=5)

    def test_sort_defaults_to_ascending(self):
        sort = SortSpec.model_validate({"FIELD": "title"})

        assert sort.direction is SortDirection.ASCENDING
        assert sort.descending is False


class TestQueryResponse:
    def test_total_defaults_to_zero(self):
        response = QueryResponse[dict](results=[], paging=Paging(pages=0, offset=0, size=20))

        assert response.total == 0
        assert response.model_dump()["paging"] == {"pages": 0, "offset": 0, "size": 20}
