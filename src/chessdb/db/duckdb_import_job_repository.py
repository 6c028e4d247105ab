"""Import job persistence for DuckDB-backed storage."""

from __future__ import annotations

from typing import TYPE_CHECKING

import duckdb

from chessdb.db._rows_to_dicts import _row_to_dict, _rows_to_dicts
from chessdb.utils.truncate import truncate_message

if TYPE_CHECKING:
    from chessdb.import_outcome import ImportCounters


class DuckDbImportJobRepository:
    """Encapsulates import_jobs and import_errors persistence."""

    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self._conn = conn

    def create_job(
        self,
        user_id: int,
        source_object_key: str,
        *,
        strict_duplicate_mode: bool = False,
        max_games: int | None = None,
    ) -> int:
        row = self._conn.execute(
            """
            INSERT INTO import_jobs (user_id, status, source_object_key, strict_duplicate_mode, max_games)
            VALUES (?, 'queued', ?, ?, ?)
            RETURNING id
            """,
            [user_id, source_object_key, strict_duplicate_mode, max_games],
        ).fetchone()
        return int(row[0])

    def fetch_job(self, import_job_id: int) -> dict[str, object] | None:
        return _row_to_dict(
            self._conn.execute("SELECT * FROM import_jobs WHERE id = ?", [import_job_id])
        )

    def update_progress(self, import_job_id: int, status: str, counters: ImportCounters) -> None:
        self._conn.execute(
            """
            UPDATE import_jobs
            SET status = ?,
                parsed_games = ?,
                inserted_games = ?,
                duplicate_games = ?,
                duplicate_by_moves = ?,
                duplicate_by_canonical = ?,
                parse_errors = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            [
                str(status),
                counters.parsed,
                counters.inserted,
                counters.duplicates,
                counters.duplicate_by_moves,
                counters.duplicate_by_canonical,
                counters.parse_errors,
                import_job_id,
            ],
        )

    def insert_error(self, import_job_id: int, game_offset: int | None, message: object) -> None:
        self._conn.execute(
            "INSERT INTO import_errors (import_job_id, game_offset, error_message) VALUES (?, ?, ?)",
            [import_job_id, game_offset, truncate_message(message)],
        )

    def delete_errors(self, import_job_id: int) -> None:
        self._conn.execute("DELETE FROM import_errors WHERE import_job_id = ?", [import_job_id])

    def fetch_errors(self, import_job_id: int) -> list[dict[str, object]]:
        result = self._conn.execute(
            """
            SELECT id, game_offset, error_message
            FROM import_errors
            WHERE import_job_id = ?
            ORDER BY game_offset NULLS LAST, id
            """,
            [import_job_id],
        )
        return _rows_to_dicts(result)
