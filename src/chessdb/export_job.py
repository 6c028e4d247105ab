"""Materialize a filtered or explicit game selection into one PGN artifact."""

from __future__ import annotations

import duckdb

from chessdb.db.duckdb_export_job_repository import DuckDbExportJobRepository
from chessdb.errors import JobNotFoundError, JobOwnershipError
from chessdb.export_filters import ExportFilter, build_export_predicate
from chessdb.pgn_annotations import render_annotated_pgn
from chessdb.ports.blob_storage import BlobStorage
from chessdb.utils.logger import get_logger

logger = get_logger(__name__)

EXPORT_CONTENT_TYPE = "application/x-chess-pgn"
EXPORT_MODE_IDS = "ids"
EXPORT_MODE_QUERY = "query"
_TERMINAL_EXPORT_STATUSES = frozenset({"completed", "failed"})


def export_object_key(user_id: int, export_job_id: int) -> str:
    return f"exports/user-{user_id}/job-{export_job_id}.pgn"


def _selection_predicate(user_id: int, job: dict[str, object]) -> tuple[str, list[object]]:
    if job["mode"] == EXPORT_MODE_IDS:
        ids = [int(game_id) for game_id in job.get("game_ids") or []]
        return "g.user_id = ? AND list_contains(?::BIGINT[], g.id)", [user_id, ids]
    query = ExportFilter.model_validate(job.get("filter_query") or {})
    return build_export_predicate(user_id, query)


def process_export_job(
    conn: duckdb.DuckDBPyConnection,
    storage: BlobStorage,
    export_job_id: int,
    user_id: int,
) -> str | None:
    """Build, upload and record the export; returns the artifact key.

    Any failure after the job is marked running marks it failed (message
    truncated) before propagating.
    """
    cursor = conn.cursor()
    try:
        jobs = DuckDbExportJobRepository(cursor)
        job = jobs.fetch_job(export_job_id)
        if job is None:
            raise JobNotFoundError(f"Export job {export_job_id} not found")
        if int(job["user_id"]) != user_id:
            raise JobOwnershipError(f"Export job user mismatch for {export_job_id}")
        if job["status"] in _TERMINAL_EXPORT_STATUSES:
            logger.info("Export job %s already %s; skipping", export_job_id, job["status"])
            return job.get("output_object_key")
        jobs.mark_running(export_job_id)
        try:
            key = _run_export(jobs, storage, job, export_job_id, user_id)
        except Exception as exc:
            jobs.mark_failed(export_job_id, exc)
            logger.exception("Export job %s failed", export_job_id)
            raise
        return key
    finally:
        cursor.close()


def _run_export(
    jobs: DuckDbExportJobRepository,
    storage: BlobStorage,
    job: dict[str, object],
    export_job_id: int,
    user_id: int,
) -> str:
    include_annotations = bool(job.get("include_annotations"))
    where_sql, params = _selection_predicate(user_id, job)
    rows = jobs.fetch_export_rows(
        user_id,
        where_sql,
        params,
        include_annotations=include_annotations,
    )
    games = [
        render_annotated_pgn(
            str(row["pgn_text"]),
            row.get("annotations") if include_annotations else None,
            row.get("move_notes") if include_annotations else None,
            row.get("schema_version"),
        )
        for row in rows
    ]
    key = export_object_key(user_id, export_job_id)
    storage.put_object(key, "\n\n".join(games).encode("utf-8"), EXPORT_CONTENT_TYPE)
    jobs.mark_completed(export_job_id, key, len(rows))
    logger.info("Export job %s wrote %s games to %s", export_job_id, len(rows), key)
    return key
