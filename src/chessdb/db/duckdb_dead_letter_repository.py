"""Dead-letter persistence for jobs whose handler raised."""

from __future__ import annotations

import json

import duckdb

from chessdb.db._rows_to_dicts import _rows_to_dicts
from chessdb.utils.truncate import truncate_message


class DuckDbDeadLetterRepository:
    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self._conn = conn

    def record(self, queue_name: str, payload: dict[str, object], error: object) -> int:
        row = self._conn.execute(
            """
            INSERT INTO queue_dead_letters (queue_name, payload, error_message)
            VALUES (?, ?, ?)
            RETURNING id
            """,
            [str(queue_name), json.dumps(payload, sort_keys=True, default=str), truncate_message(error)],
        ).fetchone()
        return int(row[0])

    def fetch_all(self, queue_name: str | None = None) -> list[dict[str, object]]:
        if queue_name is None:
            cur = self._conn.execute("SELECT * FROM queue_dead_letters ORDER BY id")
        else:
            cur = self._conn.execute(
                "SELECT * FROM queue_dead_letters WHERE queue_name = ? ORDER BY id",
                [str(queue_name)],
            )
        rows = _rows_to_dicts(cur)
        for row in rows:
            row["payload"] = json.loads(str(row["payload"]))
        return rows
