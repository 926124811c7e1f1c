"""Evaluate query tokens against an ``InvertedIndex``.

Every token evaluates to a ``doc_id -> score`` mapping. Scores are the summed
term-frequency scores of the postings that matched; AND keeps documents
present on every side, OR keeps documents present on any side, NOT removes
the EXCLUDE matches from the INCLUDE matches.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import logging

from micro_search.errors import QueryError
from micro_search.search.analyzers import VERBATIM_SCORE, value_to_texts
from micro_search.search.inverted_index import InvertedIndex, as_number
from micro_search.search.query import (
    AndToken,
    FieldToken,
    FieldValueToken,
    NotToken,
    OrToken,
    Range,
    Scalar,
    TextToken,
    Token,
)


logger = logging.getLogger(__name__)

Scores = dict[str, float]


def union(results: Iterable[Mapping[str, float]]) -> Scores:
    merged: Scores = {}
    for result in results:
        for doc_id, score in result.items():
            merged[doc_id] = merged.get(doc_id, 0.0) + score
    return merged


def intersect(results: Iterable[Mapping[str, float]]) -> Scores:
    merged: Scores | None = None
    for result in results:
        if merged is None:
            merged = dict(result)
        else:
            merged = {doc_id: score + result[doc_id] for doc_id, score in merged.items() if doc_id in result}
        if not merged:
            return {}
    return merged or {}


class QueryEvaluator:
    """Evaluates parsed query tokens against an index."""

    def __init__(self, index: InvertedIndex) -> None:
        self.index = index

    def evaluate(self, token: Token) -> Scores:
        if isinstance(token, TextToken):
            return self._text(token.text)
        if isinstance(token, FieldToken):
            return union(self._exists(name) for name in token.fields)
        if isinstance(token, FieldValueToken):
            return union(self._field_value(name, token.value) for name in token.fields)
        if isinstance(token, AndToken):
            return self._and(token.clauses)
        if isinstance(token, OrToken):
            return union(self.evaluate(clause) for clause in token.clauses)
        if isinstance(token, NotToken):
            included = self.evaluate(token.include)
            if not included:
                return {}
            excluded = self.evaluate(token.exclude)
            return {doc_id: score for doc_id, score in included.items() if doc_id not in excluded}
        msg = f"Cannot evaluate query token of type {type(token).__name__}"
        raise QueryError(msg)

    def _and(self, clauses: Iterable[Token]) -> Scores:
        # Generator keeps evaluation lazy so an empty clause short-circuits the rest.
        return intersect(self.evaluate(clause) for clause in clauses)

    def _exists(self, field_name: str) -> Scores:
        matched: Scores = {}
        for postings in self.index.field_postings(field_name).values():
            for doc_id in postings:
                matched[doc_id] = VERBATIM_SCORE
        return matched

    def _field_value(self, field_name: str, value: Scalar | Range) -> Scores:
        if isinstance(value, Range):
            return self._range(field_name, value)
        field = self.index.schema[field_name]
        if field.is_verbatim:
            number = as_number(value)
            # 3 and 3.0 are indexed as different terms; compare numbers by value.
            if number is not None and (field.is_numeric or not isinstance(value, str)):
                terms = self.index.terms_in_range(field_name, number, number, numeric=True)
                return union(self.index.term_postings(field_name, term) for term in terms)
            return union(self.index.term_postings(field_name, text) for text in value_to_texts(value))
        terms = self.index.analyzer.query_terms(str(value))
        if not terms:
            return {}
        return intersect(self.index.term_postings(field_name, term) for term in terms)

    def _range(self, field_name: str, bounds: Range) -> Scores:
        numeric = self.index.schema[field_name].is_numeric or bounds.is_numeric
        terms = self.index.terms_in_range(field_name, bounds.gte, bounds.lte, numeric=numeric)
        return union(self.index.term_postings(field_name, term) for term in terms)

    def _text(self, text: str) -> Scores:
        terms = self.index.analyzer.query_terms(text)
        if not terms:
            logger.debug("Query text %r produced no searchable terms", text)
            return {}
        fields = self.index.field_names(verbatim=False)
        return intersect(
            union(self.index.term_postings(field_name, term) for field_name in fields) for term in terms
        )
