"""Byte-level storage backends for index snapshots.

A ``BlobStore`` holds exactly one blob (the snapshot) and knows nothing about
its contents. The engine only needs five operations.
"""

from __future__ import annotations

import contextlib
from datetime import datetime, timedelta, timezone
import logging
import os
from pathlib import Path
import threading
from typing import Protocol, runtime_checkable

from micro_search.errors import NotFoundError, StorageError


logger = logging.getLogger(__name__)


@runtime_checkable
class BlobStore(Protocol):
    """Protocol implemented by snapshot storage backends.

    Backends may also expose a ``location`` string; it is only used in logs.
    """

    def exists(self) -> bool:  # pragma: no cover - interface definition
        ...

    def last_modified(self) -> str | None:  # pragma: no cover - interface definition
        ...

    def read(self) -> bytes:  # pragma: no cover - interface definition
        ...

    def write(self, data: bytes) -> None:  # pragma: no cover - interface definition
        ...

    def destroy(self) -> None:  # pragma: no cover - interface definition
        ...


class LocalBlobStore:
    """Filesystem blob written atomically via a sibling temp file."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"LocalBlobStore({str(self.path)!r})"

    @property
    def location(self) -> str:
        return str(self.path)

    @property
    def _tmp_path(self) -> Path:
        return self.path.with_name(self.path.name + ".tmp")

    def exists(self) -> bool:
        try:
            return self.path.is_file()
        except OSError as exc:
            msg = f"Cannot stat snapshot {self.path}: {exc}"
            raise StorageError(msg) from exc

    def last_modified(self) -> str | None:
        """Return the file mtime as an ISO-8601 string, or None when absent."""
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return None
        except OSError as exc:
            msg = f"Cannot stat snapshot {self.path}: {exc}"
            raise StorageError(msg) from exc
        # Size disambiguates rewrites landing within the filesystem's mtime resolution.
        modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        return f"{modified.isoformat()}#{stat.st_size}"

    def read(self) -> bytes:
        try:
            return self.path.read_bytes()
        except FileNotFoundError as exc:
            msg = f"Snapshot {self.path} does not exist"
            raise NotFoundError(msg) from exc
        except OSError as exc:
            msg = f"Cannot read snapshot {self.path}: {exc}"
            raise StorageError(msg) from exc

    def write(self, data: bytes) -> None:
        tmp_path = self._tmp_path
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(data)
            tmp_path.replace(self.path)
        except OSError as exc:
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            msg = f"Cannot write snapshot {self.path}: {exc}"
            raise StorageError(msg) from exc

    def destroy(self) -> None:
        """Delete the blob and its directory when nothing else lives there."""
        try:
            self.path.unlink(missing_ok=True)
            self._tmp_path.unlink(missing_ok=True)
        except OSError as exc:
            msg = f"Cannot delete snapshot {self.path}: {exc}"
            raise StorageError(msg) from exc

        parent = self.path.parent
        try:
            if parent.is_dir() and not any(parent.iterdir()):
                parent.rmdir()
        except OSError:
            logger.warning("Failed to remove empty snapshot directory %s", parent)


class MemoryBlobStore:
    """Process-local blob kept in memory."""

    def __init__(self, data: bytes | None = None) -> None:
        self._lock = threading.Lock()
        self._data: bytes | None = None
        self._modified: datetime | None = None
        if data is not None:
            self.write(data)

    def __repr__(self) -> str:
        return f"MemoryBlobStore(size={len(self._data) if self._data is not None else None})"

    @property
    def location(self) -> str:
        return f"memory://{id(self):x}"

    def exists(self) -> bool:
        return self._data is not None

    def last_modified(self) -> str | None:
        modified = self._modified
        return modified.isoformat() if modified is not None else None

    def read(self) -> bytes:
        data = self._data
        if data is None:
            raise NotFoundError("Memory snapshot does not exist")
        return data

    def write(self, data: bytes) -> None:
        with self._lock:
            now = datetime.now(timezone.utc)
            # Consecutive writes must never share a marker.
            if self._modified is not None and now <= self._modified:
                now = self._modified + timedelta(microseconds=1)
            self._data = bytes(data)
            self._modified = now

    def destroy(self) -> None:
        with self._lock:
            self._data = None
            self._modified = None
