"""Filesystem-backed blob storage."""

from __future__ import annotations

import os
import tempfile
import threading
from collections.abc import Iterator
from pathlib import Path, PurePosixPath

from chessdb.errors import BlobNotFoundError, ValidationError

DEFAULT_CHUNK_SIZE = 64 * 1024


def _iter_file(path: Path, chunk_size: int) -> Iterator[bytes]:
    with path.open("rb") as handle:
        while chunk := handle.read(chunk_size):
            yield chunk


class LocalBlobStorage:
    """Store objects as files below ``root``; keys are relative POSIX paths."""

    def __init__(self, root: Path, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.root = Path(root)
        self.chunk_size = chunk_size
        self._lock = threading.Lock()
        self._ready = False

    def ensure_bucket(self) -> None:
        with self._lock:
            if self._ready:
                return
            self.root.mkdir(parents=True, exist_ok=True)
            self._ready = True

    def _path_for(self, key: str) -> Path:
        pure = PurePosixPath(key)
        if not key or pure.is_absolute() or ".." in pure.parts:
            raise ValidationError(f"Invalid blob key: {key!r}")
        return self.root.joinpath(*pure.parts)

    def put_object(self, key: str, body: bytes, content_type: str) -> None:
        """Write ``body`` atomically; ``content_type`` is not persisted locally."""
        del content_type
        self.ensure_bucket()
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(body)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get_object_stream(self, key: str) -> Iterator[bytes]:
        path = self._path_for(key)
        if not path.is_file():
            raise BlobNotFoundError(f"Blob not found: {key}")
        return _iter_file(path, self.chunk_size)

    def read_object(self, key: str) -> bytes:
        return b"".join(self.get_object_stream(key))
