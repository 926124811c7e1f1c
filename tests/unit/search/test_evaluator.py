"""Unit tests for query evaluation against the inverted index."""

from __future__ import annotations

import pytest

from micro_search.search.evaluator import QueryEvaluator, intersect, union
from micro_search.search.inverted_index import InvertedIndex
from micro_search.search.query import DEFAULT_QUERY, parse_token
from micro_search.search.schema import NumericField, Schema


pytestmark = pytest.mark.unit


@pytest.fixture
def index() -> InvertedIndex:
    index = InvertedIndex(Schema(fields=[NumericField("pages")]))
    index.put(
        [
            {"id": "1", "title": "Clean Code", "author": "Robert C. Martin", "published": "2008-08-01", "pages": 464},
            {"id": "2", "title": "Code Complete", "author": "Steve McConnell", "published": "1993-06-09", "pages": 960},
            {"id": "3", "title": "Refactoring", "author": "Martin Fowler", "published": "1999-07-08", "pages": 99},
            {"id": "4", "title": "Pro Git", "tags": ["git", "version control"], "published": "2009-08-01"},
        ],
        ["published"],
    )
    return index


def _ids(index: InvertedIndex, raw) -> set[str]:
    return set(QueryEvaluator(index).evaluate(parse_token(raw)))


def test_union_sums_scores_for_multi_hits():
    assert union([{"a": 1.0}, {"a": 0.5, "b": 1.0}]) == {"a": 1.5, "b": 1.0}


def test_intersect_keeps_common_documents_and_sums():
    assert intersect([{"a": 1.0, "b": 1.0}, {"a": 0.25}]) == {"a": 1.25}
    assert intersect([]) == {}


def test_default_query_matches_every_document(index):
    assert set(QueryEvaluator(index).evaluate(DEFAULT_QUERY)) == {"1", "2", "3", "4"}


def test_text_query_searches_non_verbatim_fields(index):
    assert _ids(index, "code") == {"1", "2"}
    assert _ids(index, "martin") == {"1", "3"}


def test_text_query_requires_every_term(index):
    assert _ids(index, "clean martin") == {"1"}
    assert _ids(index, "clean fowler") == set()


def test_text_query_ignores_verbatim_fields(index):
    assert _ids(index, "2008-08-01") == set()


def test_text_of_only_stopwords_matches_nothing(index):
    assert _ids(index, "the of") == set()


def test_field_existence(index):
    assert _ids(index, {"FIELD": "tags"}) == {"4"}
    assert _ids(index, {"FIELD": ["tags", "author"]}) == {"1", "2", "3", "4"}
    assert _ids(index, {"FIELD": "missing"}) == set()


def test_field_value_matches_analyzed_terms(index):
    assert _ids(index, {"FIELD": "author", "VALUE": "Martin"}) == {"1", "3"}
    assert _ids(index, {"FIELD": "author", "VALUE": "martin fowler"}) == {"3"}
    assert _ids(index, {"FIELD": "tags", "VALUE": "version control"}) == {"4"}


def test_field_value_on_verbatim_field_is_exact(index):
    assert _ids(index, {"FIELD": "published", "VALUE": "2008-08-01"}) == {"1"}
    assert _ids(index, {"FIELD": "published", "VALUE": "2008"}) == set()


def test_numeric_literal_matches_stored_number_by_value():
    index = InvertedIndex(Schema(fields=[NumericField("price")]))
    index.put(
        [
            {"id": "1", "price": 3.0, "rating": 4},
            {"id": "2", "price": 30, "rating": 4.5},
        ],
        ["rating"],
    )

    assert _ids(index, {"FIELD": "price", "VALUE": 3}) == {"1"}
    assert _ids(index, {"FIELD": "price", "VALUE": "3"}) == {"1"}
    assert _ids(index, {"FIELD": "rating", "VALUE": 4.0}) == {"1"}
    assert _ids(index, {"FIELD": "rating", "VALUE": 4.5}) == {"2"}


def test_field_value_over_several_fields_is_an_or(index):
    assert _ids(index, {"FIELD": ["title", "tags"], "VALUE": "git"}) == {"4"}
    assert _ids(index, {"FIELD": ["title", "author"], "VALUE": "martin"}) == {"1", "3"}


def test_string_range(index):
    query = {"FIELD": "published", "VALUE": {"GTE": "1999-01-01", "LTE": "2008-12-31"}}

    assert _ids(index, query) == {"1", "3"}


def test_open_ended_range(index):
    assert _ids(index, {"FIELD": "published", "VALUE": {"GTE": "2009"}}) == {"4"}


def test_numeric_field_range_compares_numbers(index):
    assert _ids(index, {"FIELD": "pages", "VALUE": {"GTE": 100, "LTE": 500}}) == {"1"}
    # Declared numeric, so string bounds still compare numerically.
    assert _ids(index, {"FIELD": "pages", "VALUE": {"LTE": "100"}}) == {"3"}


def test_and_or_not(index):
    assert _ids(index, {"AND": ["code", {"FIELD": "author", "VALUE": "martin"}]}) == {"1"}
    assert _ids(index, {"OR": [{"FIELD": "title", "VALUE": "git"}, "refactoring"]}) == {"3", "4"}
    assert _ids(index, {"NOT": {"INCLUDE": "code", "EXCLUDE": {"FIELD": "author", "VALUE": "steve"}}}) == {"1"}


def test_and_short_circuits_on_empty_clause(index, monkeypatch):
    evaluator = QueryEvaluator(index)
    calls: list[str] = []
    original = evaluator._text

    def spy(text: str):
        calls.append(text)
        return original(text)

    monkeypatch.setattr(evaluator, "_text", spy)

    assert evaluator.evaluate(parse_token({"AND": ["nothing", "code"]})) == {}
    assert calls == ["nothing"]


def test_scores_accumulate_across_matched_terms(index):
    scores = QueryEvaluator(index).evaluate(parse_token({"OR": ["code", "clean"]}))

    assert scores["1"] > scores["2"]


def test_unknown_field_matches_nothing(index):
    assert _ids(index, {"FIELD": "isbn", "VALUE": "123"}) == set()
    assert _ids(index, {"FIELD": "isbn", "VALUE": {"GTE": 1}}) == set()
