"""Snapshot persistence: blob stores and gzip JSON snapshot encoding."""

from micro_search.storage.blob_store import BlobStore, LocalBlobStore, MemoryBlobStore
from micro_search.storage.snapshot import SnapshotStore, decode_snapshot, encode_snapshot


__all__ = [
    "BlobStore",
    "LocalBlobStore",
    "MemoryBlobStore",
    "SnapshotStore",
    "decode_snapshot",
    "encode_snapshot",
]
