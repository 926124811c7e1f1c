"""In-memory inverted index for the micro-search engine.

The index owns three structures:

* the document store - deep copies of every caller document keyed by id,
  plus internal metadata (``_indexed`` timestamp and indexing sequence);
* postings - ``field -> term -> {doc_id: score}``; term keys of each field are
  kept in a lazily rebuilt sorted list so range scans are bisections;
* forward vectors - ``doc_id -> field -> terms`` so re-puts and deletes remove
  every posting a document contributed without scanning the vocabulary.

Indexing is split in two phases. ``analyze`` validates and tokenizes a batch
without touching index state (it may run outside any lock and fails the whole
batch on the first bad document); ``apply`` installs an analyzed batch.
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from collections.abc import Iterable, Iterator, Mapping, Sequence
import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import math
from typing import Any

import orjson

from micro_search.errors import DeserializationError, IndexingError
from micro_search.search.analyzers import ScoredTerm, TextAnalyzer, tokenize
from micro_search.search.schema import INDEXED_FIELD, RESERVED_FIELDS, Schema


logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT_VERSION = 1


@dataclass(frozen=True, slots=True)
class Posting:
    """A document entry inside a term's posting list."""

    doc_id: str
    score: float

    def to_list(self) -> list[Any]:
        return [self.doc_id, self.score]

    @classmethod
    def from_list(cls, data: Sequence[Any]) -> Posting:
        doc_id, score = data
        return cls(doc_id=str(doc_id), score=float(score))


@dataclass(slots=True)
class StoredDocument:
    """A document held by the index together with its internal metadata."""

    doc_id: str
    fields: dict[str, Any]
    indexed_at: str
    sequence: int
    terms: dict[str, tuple[str, ...]] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class AnalyzedDocument:
    """Tokenized form of a caller document, ready to be applied."""

    doc_id: str
    fields: dict[str, Any]
    terms: dict[str, tuple[ScoredTerm, ...]]


@dataclass(frozen=True, slots=True)
class AnalyzedBatch:
    """Result of ``InvertedIndex.analyze``: documents plus the schema they were analyzed with."""

    documents: tuple[AnalyzedDocument, ...]
    schema: Schema

    def __len__(self) -> int:
        return len(self.documents)


def document_id(document: Mapping[str, Any], unique_field: str = "id") -> str:
    """Return the normalized id of ``document`` or raise ``IndexingError``."""

    if not isinstance(document, Mapping):
        msg = f"Documents must be mappings, got {type(document).__name__}"
        raise IndexingError(msg)
    if unique_field not in document:
        msg = f"Document missing unique field '{unique_field}'"
        raise IndexingError(msg)
    value = document[unique_field]
    if value is None or (isinstance(value, str) and not value.strip()):
        msg = f"Unique field '{unique_field}' cannot be empty"
        raise IndexingError(msg)
    return str(value)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def as_number(value: Any) -> float | None:
    """Interpret ``value`` as a finite number, or return None."""

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


class InvertedIndex:
    """Term -> posting list index with an attached document store."""

    def __init__(self, schema: Schema | None = None, *, analyzer: TextAnalyzer | None = None) -> None:
        self.schema = schema.copy() if schema is not None else Schema()
        self.analyzer = analyzer or TextAnalyzer()
        self._documents: dict[str, StoredDocument] = {}
        self._postings: dict[str, dict[str, dict[str, float]]] = {}
        self._sorted_terms: dict[str, list[str]] = {}
        self._next_sequence = 0
        self.updated_at: str | None = None

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def analyze(
        self,
        documents: Iterable[Mapping[str, Any]],
        verbatim_fields: Iterable[str] | None = None,
    ) -> AnalyzedBatch:
        """Validate and tokenize ``documents`` without mutating the index."""

        schema = self.schema.copy()
        if verbatim_fields:
            names = list(verbatim_fields)
            reserved = RESERVED_FIELDS.intersection(names)
            if reserved:
                msg = f"Verbatim fields use reserved names: {sorted(reserved)}"
                raise IndexingError(msg)
            schema.declare_verbatim(names)

        analyzed: list[AnalyzedDocument] = []
        for document in documents:
            doc_id = document_id(document, schema.unique_field)
            reserved = RESERVED_FIELDS.intersection(document.keys())
            if reserved:
                msg = f"Document '{doc_id}' uses reserved field names: {sorted(reserved)}"
                raise IndexingError(msg)

            stored = copy.deepcopy(dict(document))
            try:
                orjson.dumps(stored, option=orjson.OPT_NON_STR_KEYS)
            except orjson.JSONEncodeError as exc:
                msg = f"Document '{doc_id}' is not JSON serializable: {exc}"
                raise IndexingError(msg) from exc
            terms: dict[str, tuple[ScoredTerm, ...]] = {}
            for field_name, value in stored.items():
                if field_name == schema.unique_field:
                    continue
                schema_field = schema[field_name]
                if not schema_field.indexed:
                    continue
                scored = tokenize(value, field_name, schema_field.is_verbatim, analyzer=self.analyzer)
                if scored:
                    terms[field_name] = tuple(scored)
            analyzed.append(AnalyzedDocument(doc_id=doc_id, fields=stored, terms=terms))

        return AnalyzedBatch(documents=tuple(analyzed), schema=schema)

    def apply(self, batch: AnalyzedBatch, *, indexed_at: str | None = None) -> int:
        """Install an analyzed batch (upsert by id) and return the number of documents written."""

        timestamp = indexed_at or _utc_now()
        self.schema = batch.schema
        for analyzed in batch.documents:
            self._remove(analyzed.doc_id)
            stored = StoredDocument(
                doc_id=analyzed.doc_id,
                fields=analyzed.fields,
                indexed_at=timestamp,
                sequence=self._next_sequence,
            )
            self._next_sequence += 1
            for field_name, scored_terms in analyzed.terms.items():
                for scored in scored_terms:
                    self._add_posting(field_name, scored.term, analyzed.doc_id, scored.score)
                stored.terms[field_name] = tuple(scored.term for scored in scored_terms)
            self._add_posting(INDEXED_FIELD, timestamp, analyzed.doc_id, 1.0)
            stored.terms[INDEXED_FIELD] = (timestamp,)
            self._documents[analyzed.doc_id] = stored
        if batch.documents:
            self.updated_at = timestamp
        return len(batch.documents)

    def put(
        self,
        documents: Iterable[Mapping[str, Any]],
        verbatim_fields: Iterable[str] | None = None,
        *,
        indexed_at: str | None = None,
    ) -> int:
        """Analyze and apply ``documents`` in one step."""
        return self.apply(self.analyze(documents, verbatim_fields), indexed_at=indexed_at)

    def delete(self, doc_ids: Iterable[str]) -> int:
        """Remove documents by id; unknown ids are ignored. Returns the number removed."""

        removed = 0
        for doc_id in doc_ids:
            if self._remove(str(doc_id)):
                removed += 1
        if removed:
            self.updated_at = _utc_now()
        return removed

    def truncate(self) -> None:
        """Drop every document and posting and reset the indexing sequence."""
        self._documents.clear()
        self._postings.clear()
        self._sorted_terms.clear()
        self._next_sequence = 0
        self.updated_at = None

    def _add_posting(self, field_name: str, term: str, doc_id: str, score: float) -> None:
        terms = self._postings.setdefault(field_name, {})
        postings = terms.get(term)
        if postings is None:
            postings = terms[term] = {}
            self._sorted_terms.pop(field_name, None)
        postings[doc_id] = score

    def _remove(self, doc_id: str) -> bool:
        stored = self._documents.pop(doc_id, None)
        if stored is None:
            return False
        for field_name, terms in stored.terms.items():
            field_postings = self._postings.get(field_name)
            if field_postings is None:
                continue
            for term in terms:
                postings = field_postings.get(term)
                if postings is None:
                    continue
                postings.pop(doc_id, None)
                if not postings:
                    del field_postings[term]
                    self._sorted_terms.pop(field_name, None)
            if not field_postings:
                del self._postings[field_name]
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def count(self) -> int:
        return len(self._documents)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._documents

    def get_document(self, doc_id: str) -> StoredDocument | None:
        return self._documents.get(doc_id)

    def document_ids(self) -> list[str]:
        """Return all document ids in indexing order."""
        return sorted(self._documents, key=lambda doc_id: self._documents[doc_id].sequence)

    def sequence_of(self, doc_id: str) -> int:
        return self._documents[doc_id].sequence

    def field_names(self, *, verbatim: bool | None = None) -> list[str]:
        """Return indexed field names, optionally filtered on verbatim-ness."""
        names = sorted(name for name in self._postings if name != INDEXED_FIELD)
        if verbatim is None:
            return names
        return [name for name in names if self.schema.is_verbatim(name) == verbatim]

    def get_postings(self, field_name: str, term: str) -> list[Posting]:
        """Return postings for a specific term in a field, ordered by doc id."""
        postings = self._postings.get(field_name, {}).get(term, {})
        return [Posting(doc_id, score) for doc_id, score in sorted(postings.items())]

    def term_postings(self, field_name: str, term: str) -> Mapping[str, float]:
        """Return the raw ``doc_id -> score`` map for a term (read-only use)."""
        return self._postings.get(field_name, {}).get(term, {})

    def field_postings(self, field_name: str) -> Mapping[str, Mapping[str, float]]:
        return self._postings.get(field_name, {})

    def sorted_terms(self, field_name: str) -> list[str]:
        """Return the terms of a field in lexicographic order."""
        cached = self._sorted_terms.get(field_name)
        if cached is None:
            cached = sorted(self._postings.get(field_name, {}))
            self._sorted_terms[field_name] = cached
        return cached

    def terms_in_range(
        self,
        field_name: str,
        lower: Any = None,
        upper: Any = None,
        *,
        numeric: bool = False,
    ) -> Iterator[str]:
        """Yield terms of ``field_name`` within the inclusive ``[lower, upper]`` bounds.

        Numeric ranges skip terms that do not parse as numbers; string ranges
        compare the terms lexicographically against ``str(bound)``.
        """

        terms = self.sorted_terms(field_name)
        if numeric:
            low = as_number(lower) if lower is not None else None
            high = as_number(upper) if upper is not None else None
            for term in terms:
                number = as_number(term)
                if number is None:
                    continue
                if low is not None and number < low:
                    continue
                if high is not None and number > high:
                    continue
                yield term
            return

        start = bisect_left(terms, str(lower)) if lower is not None else 0
        stop = bisect_right(terms, str(upper)) if upper is not None else len(terms)
        yield from terms[start:stop]

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def to_snapshot(self) -> dict[str, Any]:
        """Serialize the complete index state to a JSON-compatible dict.

        Short keys keep snapshots small: v=version, u=updated_at, s=schema,
        q=next sequence, d=documents, m=metadata, p=postings.
        """

        return {
            "v": SNAPSHOT_FORMAT_VERSION,
            "u": self.updated_at,
            "s": self.schema.to_dict(),
            "q": self._next_sequence,
            "d": {doc_id: stored.fields for doc_id, stored in self._documents.items()},
            "m": {doc_id: [stored.indexed_at, stored.sequence] for doc_id, stored in self._documents.items()},
            "p": {
                field_name: {
                    term: [[doc_id, score] for doc_id, score in sorted(postings.items())]
                    for term, postings in terms.items()
                }
                for field_name, terms in self._postings.items()
            },
        }

    @classmethod
    def from_snapshot(cls, data: Mapping[str, Any], *, analyzer: TextAnalyzer | None = None) -> InvertedIndex:
        """Rebuild an index from ``to_snapshot`` output; raises ``DeserializationError`` when malformed."""

        if not isinstance(data, Mapping):
            raise DeserializationError("Snapshot payload must be a JSON object")
        version = data.get("v")
        if version != SNAPSHOT_FORMAT_VERSION:
            msg = f"Unsupported snapshot format version: {version!r}"
            raise DeserializationError(msg)

        try:
            index = cls(Schema.from_dict(data["s"]), analyzer=analyzer)
            metadata = data["m"]
            for doc_id, fields in data["d"].items():
                indexed_at, sequence = metadata[doc_id]
                index._documents[str(doc_id)] = StoredDocument(
                    doc_id=str(doc_id),
                    fields=dict(fields),
                    indexed_at=str(indexed_at),
                    sequence=int(sequence),
                )

            forward: dict[str, dict[str, list[str]]] = {}
            for field_name, terms in data["p"].items():
                field_postings: dict[str, dict[str, float]] = {}
                for term, entries in terms.items():
                    postings = {}
                    for entry in entries:
                        posting = Posting.from_list(entry)
                        if posting.doc_id not in index._documents:
                            msg = f"Posting for unknown document '{posting.doc_id}' in field '{field_name}'"
                            raise DeserializationError(msg)
                        postings[posting.doc_id] = posting.score
                        forward.setdefault(posting.doc_id, {}).setdefault(field_name, []).append(term)
                    if postings:
                        field_postings[str(term)] = postings
                if field_postings:
                    index._postings[str(field_name)] = field_postings

            # Forward vectors are derived rather than persisted.
            for doc_id, fields in forward.items():
                index._documents[doc_id].terms = {name: tuple(terms) for name, terms in fields.items()}

            index._next_sequence = int(data["q"])
            updated_at = data.get("u")
            index.updated_at = str(updated_at) if updated_at is not None else None
        except DeserializationError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            msg = f"Malformed snapshot payload: {exc}"
            raise DeserializationError(msg) from exc

        logger.debug("Rebuilt index with %d documents from snapshot", index.count())
        return index
