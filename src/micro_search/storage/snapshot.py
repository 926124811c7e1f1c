"""Snapshot encoding and change detection on top of a ``BlobStore``.

Snapshots are gzip-compressed JSON. Keys are sorted and the gzip header mtime
is pinned to zero so encoding the same index state always yields the same
bytes.
"""

from __future__ import annotations

from dataclasses import dataclass
import gzip
import logging
from typing import Any
import zlib

import orjson

from micro_search.errors import DeserializationError, NotFoundError
from micro_search.storage.blob_store import BlobStore


logger = logging.getLogger(__name__)

DEFAULT_COMPRESSION_LEVEL = 6


@dataclass(frozen=True, slots=True)
class LoadedSnapshot:
    payload: dict[str, Any]
    marker: str | None
    size: int


def encode_snapshot(payload: dict[str, Any], *, compression_level: int = DEFAULT_COMPRESSION_LEVEL) -> bytes:
    serialized = orjson.dumps(payload, option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS)
    return gzip.compress(serialized, compresslevel=compression_level, mtime=0)


def decode_snapshot(data: bytes) -> dict[str, Any]:
    """Decompress and parse snapshot bytes; raises ``DeserializationError`` when corrupt."""

    try:
        payload = orjson.loads(gzip.decompress(data))
    except (OSError, EOFError, zlib.error, orjson.JSONDecodeError) as exc:
        msg = f"Snapshot is not valid gzip-compressed JSON: {exc}"
        raise DeserializationError(msg) from exc
    if not isinstance(payload, dict):
        raise DeserializationError("Snapshot payload must be a JSON object")
    return payload


class SnapshotStore:
    """Reads and writes encoded snapshots, remembering the last revision seen."""

    def __init__(self, blob: BlobStore, *, compression_level: int = DEFAULT_COMPRESSION_LEVEL) -> None:
        self.blob = blob
        self.compression_level = compression_level
        self._last_seen: str | None = None

    @property
    def location(self) -> str:
        return getattr(self.blob, "location", None) or repr(self.blob)

    @property
    def last_seen(self) -> str | None:
        return self._last_seen

    def exists(self) -> bool:
        return self.blob.exists()

    def is_current(self) -> bool:
        """True when the blob is unchanged since this store last read or wrote it."""
        if self._last_seen is None:
            return False
        return self.blob.last_modified() == self._last_seen

    def save(self, payload: dict[str, Any]) -> int:
        """Encode and write ``payload``; returns the number of bytes written."""
        data = encode_snapshot(payload, compression_level=self.compression_level)
        self.blob.write(data)
        self._last_seen = self.blob.last_modified()
        logger.debug("Wrote %d byte snapshot to %s", len(data), self.location)
        return len(data)

    def load(self) -> LoadedSnapshot:
        """Read and decode the snapshot; raises ``NotFoundError`` when absent.

        The revision is not recorded until ``mark_seen`` is called, so a
        payload the caller fails to install is re-read next time.
        """
        # Marker taken before the read so a concurrent rewrite is picked up next time.
        marker = self.blob.last_modified()
        if not self.blob.exists():
            msg = f"No snapshot at {self.location}"
            raise NotFoundError(msg)
        data = self.blob.read()
        return LoadedSnapshot(payload=decode_snapshot(data), marker=marker, size=len(data))

    def mark_seen(self, marker: str | None) -> None:
        self._last_seen = marker

    def destroy(self) -> None:
        self.blob.destroy()
        self._last_seen = None
