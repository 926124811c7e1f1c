"""Tokenizer pipeline for the micro-search index.

Raw field values pass through a fixed sequence of composable stages before
they reach the inverted index:

    SPLIT -> SKIP -> LOWERCASE -> REPLACE -> NGRAMS -> STOPWORDS -> SCORE

Every stage is a plain callable over an iterable of immutable ``Token``
objects, so the pipeline is a pure function of its input and a static
configuration. Verbatim fields bypass the pipeline entirely and produce a
single token carrying the raw value.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, replace
import re
from typing import Any, Protocol
import unicodedata


VERBATIM_SCORE = 1.0
DEFAULT_NGRAM_LENGTHS: tuple[int, ...] = (1, 2)
_SCORE_PRECISION = 4


@dataclass(frozen=True)
class Token:
    """Represents a token emitted by the tokenizer stages."""

    text: str
    position: int
    start_char: int = 0
    end_char: int = 0

    def copy_with(self, **updates: Any) -> Token:
        return replace(self, **updates)


@dataclass(frozen=True, order=True)
class ScoredTerm:
    """A distinct term of one field value and its term-frequency score."""

    term: str
    score: float


class Tokenizer(Protocol):
    """Protocol implemented by tokenizers."""

    def __call__(self, text: str) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


class TokenFilter(Protocol):
    """Protocol implemented by token filters."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


class RegexTokenizer:
    """Regex-based tokenizer that splits on word boundaries."""

    def __init__(self, pattern: str = r"[\w']+", flags: int = re.UNICODE | re.MULTILINE) -> None:
        self.pattern = re.compile(pattern, flags)

    def __call__(self, text: str) -> Iterator[Token]:
        for position, match in enumerate(self.pattern.finditer(text)):
            yield Token(
                text=match.group(0),
                position=position,
                start_char=match.start(),
                end_char=match.end(),
            )


class SkipFilter:
    """Drops empty and punctuation-only tokens."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            stripped = token.text.strip("'")
            if not stripped or not any(ch.isalnum() for ch in stripped):
                continue
            if stripped != token.text:
                yield token.copy_with(text=stripped)
            else:
                yield token


class LowercaseFilter:
    """Filter that lowercases token text."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if token.text.islower():
                yield token
            else:
                yield token.copy_with(text=token.text.lower())


class AsciiFoldingFilter:
    """Replaces accented characters with their unaccented base form."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            folded = fold_diacritics(token.text)
            yield token if folded == token.text else token.copy_with(text=folded)


def fold_diacritics(text: str) -> str:
    """Strip combining marks after NFKD decomposition ("café" -> "cafe")."""
    if text.isascii():
        return text
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


class NgramFilter:
    """Expands the token stream into word n-grams of the configured widths.

    Width 1 keeps the original tokens; wider grams join adjacent tokens with a
    single space so "continuous delivery" is matchable as one term.
    """

    def __init__(self, lengths: Sequence[int] = DEFAULT_NGRAM_LENGTHS) -> None:
        self.lengths = tuple(sorted({int(width) for width in lengths if int(width) > 0}))

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        window = list(tokens)
        for width in self.lengths:
            for start in range(len(window) - width + 1):
                if width == 1:
                    yield window[start]
                    continue
                first, last = window[start], window[start + width - 1]
                yield Token(
                    text=" ".join(token.text for token in window[start : start + width]),
                    position=first.position,
                    start_char=first.start_char,
                    end_char=last.end_char,
                )


DEFAULT_STOPWORDS = [
    "a",
    "an",
    "and",
    "are",
    "as",
    "at",
    "be",
    "but",
    "by",
    "for",
    "if",
    "in",
    "into",
    "is",
    "it",
    "no",
    "not",
    "of",
    "on",
    "or",
    "such",
    "that",
    "the",
    "their",
    "then",
    "there",
    "these",
    "they",
    "this",
    "to",
    "was",
    "will",
    "with",
]


class StopFilter:
    """Removes stopwords from the stream."""

    def __init__(self, stopwords: Sequence[str] | None = None) -> None:
        vocab = stopwords if stopwords is not None else DEFAULT_STOPWORDS
        self.stopwords = frozenset(word.lower() for word in vocab)

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if token.text.lower() not in self.stopwords:
                yield token


class AnalyzerPipeline:
    """Composable analyzer pipeline (tokenizer + filters)."""

    def __init__(self, tokenizer: Tokenizer, filters: Sequence[TokenFilter] | None = None) -> None:
        self.tokenizer = tokenizer
        self.filters = tuple(filters or ())

    def __call__(self, text: str) -> list[Token]:
        stream: Iterable[Token] = self.tokenizer(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        return list(stream)


def score_term_frequency(tokens: Sequence[Token]) -> list[ScoredTerm]:
    """Score each distinct term as occurrences divided by the token count."""

    if not tokens:
        return []
    counts = Counter(token.text for token in tokens)
    total = len(tokens)
    return sorted(ScoredTerm(term, round(count / total, _SCORE_PRECISION)) for term, count in counts.items())


class TextAnalyzer:
    """Default analyzer for word-split fields.

    ``__call__`` runs the full indexing pipeline (including n-grams);
    ``query_terms`` runs the same normalization without n-gram expansion so
    query literals line up with the unigram postings.
    """

    def __init__(
        self,
        *,
        ngram_lengths: Sequence[int] = DEFAULT_NGRAM_LENGTHS,
        stopwords: Sequence[str] | None = None,
    ) -> None:
        normalize: list[TokenFilter] = [SkipFilter(), LowercaseFilter(), AsciiFoldingFilter()]
        stop = StopFilter(stopwords)
        self.pipeline = AnalyzerPipeline(RegexTokenizer(), [*normalize, NgramFilter(ngram_lengths), stop])
        self.query_pipeline = AnalyzerPipeline(RegexTokenizer(), [*normalize, stop])

    def __call__(self, text: str) -> list[Token]:
        return self.pipeline(text)

    def query_terms(self, text: str) -> list[str]:
        """Return distinct normalized terms of a query literal, in order."""
        seen: dict[str, None] = {}
        for token in self.query_pipeline(text):
            seen.setdefault(token.text, None)
        return list(seen)


class VerbatimAnalyzer:
    """Analyzer that treats the entire input as a single token."""

    def __call__(self, text: str) -> list[Token]:
        if not text:
            return []
        return [Token(text=text, position=0, start_char=0, end_char=len(text))]


def value_to_texts(value: Any) -> list[str]:
    """Flatten a raw field value into the strings that get analyzed.

    Strings map to themselves, numbers and booleans to their JSON-ish text,
    and sequences to one entry per non-null element. Mappings and other
    objects are stored but never indexed.
    """

    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, bool):
        return ["true" if value else "false"]
    if isinstance(value, (int, float)):
        return [str(value)]
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        texts: list[str] = []
        for item in value:
            if isinstance(item, (str, int, float)):
                texts.extend(value_to_texts(item))
        return texts
    return []


_VERBATIM = VerbatimAnalyzer()


def tokenize(
    raw_value: Any,
    field_name: str,
    is_verbatim: bool,
    *,
    analyzer: TextAnalyzer | None = None,
) -> list[ScoredTerm]:
    """Turn a raw field value into scored terms.

    ``field_name`` is accepted for parity with per-field analyzers; the
    default analyzers treat all fields alike.
    """

    del field_name
    texts = value_to_texts(raw_value)
    if is_verbatim:
        terms = {token.text for text in texts for token in _VERBATIM(text)}
        return [ScoredTerm(term, VERBATIM_SCORE) for term in sorted(terms)]

    active = analyzer or TextAnalyzer()
    tokens: list[Token] = []
    for text in texts:
        tokens.extend(active(text))
    return score_term_frequency(tokens)
