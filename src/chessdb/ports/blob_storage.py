"""Blob storage port."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Protocol


class BlobStorage(Protocol):
    """Object storage used for uploaded archives and export artifacts."""

    def ensure_bucket(self) -> None:
        """Create the backing bucket if needed; safe to call repeatedly."""

    def put_object(self, key: str, body: bytes, content_type: str) -> None:
        """Store ``body`` under ``key``."""

    def get_object_stream(self, key: str) -> Iterator[bytes]:
        """Yield the stored object in chunks; raise BlobNotFoundError when absent."""
