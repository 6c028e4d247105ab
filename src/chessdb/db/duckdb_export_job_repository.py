"""Export job and annotation persistence for DuckDB-backed storage."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence

import duckdb

from chessdb.db._rows_to_dicts import _row_to_dict, _rows_to_dicts
from chessdb.utils.truncate import truncate_message

_EXPORT_ROW_COLUMNS = """
    g.id AS game_id,
    gp.pgn_text,
    {annotation_columns}
"""
_ANNOTATION_COLUMNS = "ua.annotations, ua.move_notes, ua.schema_version"
_NO_ANNOTATION_COLUMNS = (
    "NULL::TEXT AS annotations, NULL::TEXT AS move_notes, NULL::INTEGER AS schema_version"
)


def _loads(value: object) -> dict[str, object] | None:
    if value is None:
        return None
    loaded = json.loads(str(value))
    return loaded if isinstance(loaded, dict) else None


class DuckDbExportJobRepository:
    """Encapsulates export_jobs reads/writes and the export game query."""

    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self._conn = conn

    def create_job(
        self,
        user_id: int,
        *,
        mode: str,
        game_ids: Sequence[int] | None,
        filter_query: Mapping[str, object] | None,
        include_annotations: bool,
    ) -> int:
        row = self._conn.execute(
            """
            INSERT INTO export_jobs (user_id, status, mode, game_ids, filter_query, include_annotations)
            VALUES (?, 'queued', ?, ?, ?, ?)
            RETURNING id
            """,
            [
                user_id,
                mode,
                json.dumps(list(game_ids)) if game_ids is not None else None,
                json.dumps(dict(filter_query), default=str) if filter_query is not None else None,
                include_annotations,
            ],
        ).fetchone()
        return int(row[0])

    def fetch_job(self, export_job_id: int) -> dict[str, object] | None:
        job = _row_to_dict(
            self._conn.execute("SELECT * FROM export_jobs WHERE id = ?", [export_job_id])
        )
        if job is None:
            return None
        job["game_ids"] = json.loads(str(job["game_ids"])) if job.get("game_ids") else None
        job["filter_query"] = _loads(job.get("filter_query"))
        return job

    def mark_running(self, export_job_id: int) -> None:
        self._conn.execute(
            """
            UPDATE export_jobs
            SET status = 'running', error_message = NULL, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            [export_job_id],
        )

    def mark_completed(self, export_job_id: int, output_object_key: str, exported_games: int) -> None:
        self._conn.execute(
            """
            UPDATE export_jobs
            SET status = 'completed',
                output_object_key = ?,
                exported_games = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            [output_object_key, exported_games, export_job_id],
        )

    def mark_failed(self, export_job_id: int, error: object) -> None:
        self._conn.execute(
            """
            UPDATE export_jobs
            SET status = 'failed', error_message = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            [truncate_message(error), export_job_id],
        )

    def fetch_export_rows(
        self,
        user_id: int,
        where_sql: str,
        params: Sequence[object],
        *,
        include_annotations: bool,
    ) -> list[dict[str, object]]:
        """Return game PGN (and annotations when asked) for games matching ``where_sql``."""
        columns = _ANNOTATION_COLUMNS if include_annotations else _NO_ANNOTATION_COLUMNS
        join = (
            "LEFT JOIN user_annotations ua ON ua.game_id = g.id AND ua.user_id = ?"
            if include_annotations
            else ""
        )
        join_params: list[object] = [user_id] if include_annotations else []
        result = self._conn.execute(
            f"""
            SELECT {_EXPORT_ROW_COLUMNS.format(annotation_columns=columns)}
            FROM games g
            JOIN game_pgn gp ON gp.game_id = g.id
            {join}
            WHERE {where_sql}
            ORDER BY g.id
            """,
            [*join_params, *params],
        )
        rows = _rows_to_dicts(result)
        for row in rows:
            row["annotations"] = _loads(row.get("annotations"))
            row["move_notes"] = _loads(row.get("move_notes"))
        return rows

    def save_annotations(
        self,
        user_id: int,
        game_id: int,
        annotations: Mapping[str, object] | None,
        move_notes: Mapping[str, object] | None,
        schema_version: int = 2,
    ) -> None:
        self._conn.execute(
            """
            INSERT INTO user_annotations (user_id, game_id, annotations, move_notes, schema_version)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (user_id, game_id) DO UPDATE SET
                annotations = EXCLUDED.annotations,
                move_notes = EXCLUDED.move_notes,
                schema_version = EXCLUDED.schema_version,
                updated_at = now()
            """,
            [
                user_id,
                game_id,
                json.dumps(dict(annotations or {})),
                json.dumps(dict(move_notes or {})),
                schema_version,
            ],
        )
