"""Unit of work port abstraction."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol, TypeVar

ConnT = TypeVar("ConnT")
ConnT_co = TypeVar("ConnT_co", covariant=True)


class UnitOfWork(Protocol[ConnT_co]):
    """Define the transaction boundary for database operations."""

    def begin(self) -> ConnT_co:
        """Start a unit of work and return the active connection."""

    def commit(self) -> None:
        """Commit the active unit of work."""

    def rollback(self) -> None:
        """Rollback the active unit of work."""

    def close(self) -> None:
        """Release the underlying connection resources."""


@contextmanager
def transaction(uow: UnitOfWork[ConnT]) -> Iterator[ConnT]:
    """Run the enclosed block in one unit of work; roll back and re-raise on error."""
    conn = uow.begin()
    try:
        yield conn
    except BaseException:
        uow.rollback()
        raise
    uow.commit()
