"""MicroSearch - an embeddable document search engine.

The engine ties the search pipeline together behind a small interface:

- ``put`` / ``put_many`` / ``delete`` / ``delete_many`` / ``truncate`` mutate
  the in-memory inverted index and mark the engine dirty;
- ``query`` evaluates a boolean/range/field query and returns a sorted,
  paged ``QueryResponse``;
- ``commit`` (alias ``flush``) persists a gzip snapshot through a
  ``BlobStore`` when dirty; ``initialize`` / ``import_`` restore one;
  ``export`` writes a snapshot elsewhere and returns where it went.

Concurrency: queries and snapshot serialization share the read side of a
read-write lock; mutations apply under the write side after tokenizing
outside it. Writers are serialized by a mutation lock and snapshot I/O by a
commit lock, always acquired in the order commit -> mutation -> read/write.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from enum import Enum
import logging
import os
from pathlib import Path
import threading
from typing import TYPE_CHECKING, Any, Generic, TypeVar, Union

from pydantic import BaseModel, ValidationError

from micro_search.config import Settings
from micro_search.domain.search import QueryRequest, QueryResponse
from micro_search.errors import IndexingError, NotFoundError, QueryError
from micro_search.locking import ReadWriteLock
from micro_search.observability.context import index_context
from micro_search.observability.metrics import DOCUMENT_COUNT, SNAPSHOT_BYTES, track_operation
from micro_search.observability.tracing import create_span
from micro_search.search.analyzers import TextAnalyzer
from micro_search.search.evaluator import QueryEvaluator
from micro_search.search.inverted_index import InvertedIndex, document_id
from micro_search.search.results import ResultPipeline
from micro_search.search.schema import Schema
from micro_search.storage.blob_store import BlobStore, LocalBlobStore, MemoryBlobStore
from micro_search.storage.snapshot import LoadedSnapshot, SnapshotStore


if TYPE_CHECKING:
    from opentelemetry.trace import Span


logger = logging.getLogger(__name__)

DocumentT = TypeVar("DocumentT")

DocumentInput = Union[Mapping[str, Any], BaseModel]
StoreInput = Union[BlobStore, str, os.PathLike]


class IndexState(str, Enum):
    """Persistence state of the in-memory index."""

    CLEAN = "clean"
    DIRTY = "dirty"


def resolve_store(store: StoreInput, snapshot_filename: str) -> BlobStore:
    """Turn a path or ``BlobStore`` into a ``BlobStore``; a directory path gets ``snapshot_filename`` appended."""
    if isinstance(store, (str, os.PathLike)):
        path = Path(store)
        if path.is_dir() or not path.suffix:
            path = path / snapshot_filename
        return LocalBlobStore(path)
    if isinstance(store, BlobStore):
        return store
    msg = f"Unsupported snapshot store: {store!r}"
    raise TypeError(msg)


class MicroSearch(Generic[DocumentT]):
    """In-memory inverted index with snapshot persistence.

    Example:
        engine = MicroSearch("var/books")
        engine.initialize()
        engine.put_many(books, verbatim_fields=["published"])
        engine.query({"QUERY": "typescript", "PAGE": {"SIZE": 10}})
        engine.commit()
    """

    def __init__(
        self,
        store: StoreInput | None = None,
        *,
        schema: Schema | None = None,
        settings: Settings | None = None,
        export_store: StoreInput | None = None,
        document_model: type[DocumentT] | None = None,
        name: str | None = None,
    ) -> None:
        """Create an engine.

        Args:
            store: Snapshot location; a directory path (the snapshot goes to
                ``<dir>/index.gz``) or any ``BlobStore``. Defaults to
                ``settings.index_root``.
            schema: Field declarations; undeclared fields are analyzed text.
            settings: Engine settings, loaded from the environment by default.
            export_store: Default ``export()`` target. For path-backed engines
                it is ``<dir>/export/index.gz``; otherwise a memory blob.
            document_model: Pydantic model used to validate query results.
            name: Label used in logs, spans and metrics.
        """
        settings = settings or Settings()

        if store is None or isinstance(store, (str, os.PathLike)):
            root = Path(store) if store is not None else settings.index_root
            blob: BlobStore = LocalBlobStore(settings.snapshot_path(root))
            default_export: BlobStore = LocalBlobStore(settings.export_path(root))
            default_name = root.name or "index"
        elif isinstance(store, BlobStore):
            blob = store
            default_export = MemoryBlobStore()
            default_name = "memory"
        else:
            msg = f"Unsupported snapshot store: {store!r}"
            raise TypeError(msg)
        if export_store is not None:
            default_export = resolve_store(export_store, settings.snapshot_filename)

        self.settings = settings
        self.name = name or default_name
        self.document_model = document_model
        self._analyzer = TextAnalyzer(
            ngram_lengths=self.settings.ngram_lengths,
            stopwords=self.settings.get_stopwords(),
        )
        self._index = InvertedIndex(schema, analyzer=self._analyzer)
        self._snapshots = SnapshotStore(blob, compression_level=self.settings.compression_level)
        self._export_store = default_export

        self._lock = ReadWriteLock()
        self._mutation_lock = threading.Lock()
        self._commit_lock = threading.Lock()
        self._state = IndexState.CLEAN

        logger.debug("Created MicroSearch index %s backed by %s", self.name, self._snapshots.location)

    def __repr__(self) -> str:
        return f"MicroSearch(name={self.name!r}, store={self._snapshots.location!r}, state={self._state.value})"

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def state(self) -> IndexState:
        return self._state

    @property
    def is_dirty(self) -> bool:
        return self._state is IndexState.DIRTY

    @property
    def store(self) -> BlobStore:
        """The blob holding this engine's own snapshot."""
        return self._snapshots.blob

    @property
    def export_store(self) -> BlobStore:
        return self._export_store

    @property
    def schema(self) -> Schema:
        """A copy of the current field declarations."""
        with self._lock.read():
            return self._index.schema.copy()

    def is_current(self) -> bool:
        """True when the snapshot store is unchanged since this engine last read or wrote it."""
        return self._snapshots.is_current()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def put(self, document: DocumentInput) -> int:
        return self.put_many([document])

    def put_many(self, documents: Iterable[DocumentInput], verbatim_fields: Iterable[str] | None = None) -> int:
        """Upsert ``documents`` by id and return how many were written.

        ``verbatim_fields`` are declared as keyword fields before indexing:
        their values become single exact terms usable in GTE/LTE ranges. The
        whole batch is validated and tokenized before anything is applied, so
        one bad document leaves the index untouched.
        """
        with self._operation("put") as span:
            batch_input = [self._as_mapping(document) for document in documents]
            span.set_attribute("microsearch.batch_size", len(batch_input))
            with self._mutation_lock:
                batch = self._index.analyze(batch_input, verbatim_fields)
                if not batch:
                    return 0
                with self._lock.write():
                    written = self._index.apply(batch)
                    self._state = IndexState.DIRTY
                    total = self._index.count()
            DOCUMENT_COUNT.labels(index=self.name).set(total)
            logger.debug("Indexed %d documents into %s (%d total)", written, self.name, total)
            return written

    def delete(self, document: DocumentInput | str | int) -> int:
        return self.delete_many([document])

    def delete_many(self, documents: Iterable[DocumentInput | str | int]) -> int:
        """Remove documents (or bare ids); unknown ids are ignored. Returns the number removed."""
        with self._operation("delete") as span:
            with self._mutation_lock:
                unique_field = self._index.schema.unique_field
                doc_ids = [self._as_id(document, unique_field) for document in documents]
                span.set_attribute("microsearch.batch_size", len(doc_ids))
                with self._lock.write():
                    removed = self._index.delete(doc_ids)
                    if removed:
                        self._state = IndexState.DIRTY
                    total = self._index.count()
            DOCUMENT_COUNT.labels(index=self.name).set(total)
            logger.debug("Deleted %d of %d requested documents from %s", removed, len(doc_ids), self.name)
            return removed

    def truncate(self) -> None:
        """Drop every document and destroy this engine's persisted snapshot."""
        with self._operation("truncate"):
            with self._commit_lock, self._mutation_lock:
                self._snapshots.destroy()
                with self._lock.write():
                    self._index.truncate()
                    self._state = IndexState.DIRTY
            DOCUMENT_COUNT.labels(index=self.name).set(0)
            logger.info("Truncated index %s", self.name)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def count(self) -> int:
        with self._lock.read():
            return self._index.count()

    def query(self, request: QueryRequest | Mapping[str, Any] | Any = None) -> QueryResponse[DocumentT]:
        """Run a query.

        ``request`` is a ``QueryRequest``, a mapping with ``QUERY`` / ``SORT`` /
        ``PAGE`` keys, a bare query token (string, list or token mapping
        without those keys), or None for every document.
        """
        with self._operation("query") as span:
            parsed = self._as_request(request)
            token = parsed.token()
            with self._lock.read():
                scores = QueryEvaluator(self._index).evaluate(token)
                response = ResultPipeline(
                    self._index,
                    default_page_size=self.settings.default_page_size,
                ).run(scores, parsed)
            span.set_attribute("microsearch.matches", response.total)
            logger.debug("Query on %s matched %d documents", self.name, response.total)
            if self.document_model is None:
                return response
            model: Any = self.document_model
            return QueryResponse(
                results=[model.model_validate(result) for result in response.results],
                paging=response.paging,
                total=response.total,
            )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def commit(self) -> bool:
        """Write a snapshot to the own store when dirty; returns whether one was written."""
        with self._operation("commit") as span:
            with self._commit_lock, self._lock.read():
                if self._state is IndexState.CLEAN:
                    span.set_attribute("microsearch.skipped", True)
                    return False
                size = self._snapshots.save(self._index.to_snapshot())
                # Still under the read lock, so no mutation can slip in before the reset.
                self._state = IndexState.CLEAN
                total = self._index.count()
            SNAPSHOT_BYTES.labels(index=self.name).set(size)
            logger.info("Committed %d documents (%d bytes) to %s", total, size, self._snapshots.location)
            return True

    def flush(self) -> bool:
        return self.commit()

    def initialize(self) -> bool:
        """Load the own snapshot unless it is absent or already current; returns whether one was loaded."""
        with self._operation("initialize"):
            return self._load(self._snapshots)

    def import_(self, source: StoreInput | None = None) -> bool:
        """Replace the index with the snapshot held by ``source`` (default: the own store)."""
        with self._operation("import"):
            snapshots = self._snapshots
            if source is not None:
                blob = resolve_store(source, self.settings.snapshot_filename)
                if blob is not self._snapshots.blob:
                    snapshots = self._snapshot_store(blob)
            return self._load(snapshots)

    def export(self, destination: StoreInput | None = None) -> BlobStore:
        """Write a full snapshot to ``destination`` (default: the export store) and return it."""
        with self._operation("export") as span:
            target = self._export_store
            if destination is not None:
                target = resolve_store(destination, self.settings.snapshot_filename)
            own = target is self._snapshots.blob
            snapshots = self._snapshots if own else self._snapshot_store(target)
            span.set_attribute("microsearch.destination", snapshots.location)
            with self._commit_lock, self._lock.read():
                size = snapshots.save(self._index.to_snapshot())
                if own:
                    self._state = IndexState.CLEAN
                total = self._index.count()
            logger.info("Exported %d documents (%d bytes) to %s", total, size, snapshots.location)
            return target

    def _load(self, snapshots: SnapshotStore) -> bool:
        with self._commit_lock:
            if snapshots.is_current():
                logger.debug("Snapshot at %s is current; nothing to load", snapshots.location)
                return False
            try:
                loaded = snapshots.load()
            except NotFoundError:
                logger.info("No snapshot at %s; keeping the in-memory index", snapshots.location)
                return False
            # Only a load from the own store matches what is persisted.
            self._install(loaded, clean=snapshots is self._snapshots)
            snapshots.mark_seen(loaded.marker)
        logger.info("Loaded %d documents (%d bytes) from %s", self.count(), loaded.size, snapshots.location)
        return True

    def _install(self, loaded: LoadedSnapshot, *, clean: bool) -> None:
        # Rebuild fully before swapping so a corrupt snapshot never touches live state.
        index = InvertedIndex.from_snapshot(loaded.payload, analyzer=self._analyzer)
        with self._mutation_lock, self._lock.write():
            self._index = index
            self._state = IndexState.CLEAN if clean else IndexState.DIRTY
        DOCUMENT_COUNT.labels(index=self.name).set(index.count())
        SNAPSHOT_BYTES.labels(index=self.name).set(loaded.size)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @contextmanager
    def _operation(self, operation: str) -> Iterator[Span]:
        with (
            index_context(self.name),
            track_operation(self.name, operation),
            create_span(f"microsearch.{operation}", attributes={"microsearch.index": self.name}) as span,
        ):
            yield span

    def _snapshot_store(self, store: StoreInput) -> SnapshotStore:
        blob = resolve_store(store, self.settings.snapshot_filename)
        return SnapshotStore(blob, compression_level=self.settings.compression_level)

    @staticmethod
    def _as_mapping(document: DocumentInput) -> Mapping[str, Any]:
        if isinstance(document, BaseModel):
            return document.model_dump()
        if isinstance(document, Mapping):
            return document
        msg = f"Documents must be mappings or pydantic models, got {type(document).__name__}"
        raise IndexingError(msg)

    @classmethod
    def _as_id(cls, document: DocumentInput | str | int, unique_field: str) -> str:
        if isinstance(document, str) or (isinstance(document, int) and not isinstance(document, bool)):
            return str(document)
        return document_id(cls._as_mapping(document), unique_field)

    @staticmethod
    def _as_request(request: QueryRequest | Mapping[str, Any] | Any) -> QueryRequest:
        if request is None:
            return QueryRequest()
        if isinstance(request, QueryRequest):
            return request
        if isinstance(request, Mapping) and {str(key).upper() for key in request} & {"QUERY", "SORT", "PAGE"}:
            try:
                return QueryRequest.model_validate(dict(request))
            except ValidationError as exc:
                msg = f"Invalid query request: {exc}"
                raise QueryError(msg) from exc
        return QueryRequest(query=request)
