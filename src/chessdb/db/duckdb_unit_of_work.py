"""DuckDB unit-of-work implementation."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import duckdb

from chessdb.ports.unit_of_work import UnitOfWork


@dataclass
class DuckDbUnitOfWork(UnitOfWork[duckdb.DuckDBPyConnection]):
    """Manage a transaction on a cursor of a shared DuckDB connection.

    The root connection is long-lived and process-wide; each unit of work
    opens its own cursor so concurrent workers never share transaction state.
    """

    root: duckdb.DuckDBPyConnection
    cursor_factory: Callable[[duckdb.DuckDBPyConnection], duckdb.DuckDBPyConnection] = (
        lambda conn: conn.cursor()
    )
    _conn: duckdb.DuckDBPyConnection | None = None
    _active: bool = False

    def begin(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            self._conn = self.cursor_factory(self.root)
        if not self._active:
            self._conn.execute("BEGIN")
            self._active = True
        return self._conn

    def commit(self) -> None:
        if self._conn is None or not self._active:
            return
        self._conn.execute("COMMIT")
        self._active = False

    def rollback(self) -> None:
        if self._conn is None or not self._active:
            return
        self._conn.execute("ROLLBACK")
        self._active = False

    def close(self) -> None:
        if self._conn is None:
            return
        if self._active:
            self.rollback()
        self._conn.close()
        self._conn = None
