"""Create and enqueue jobs on behalf of a caller."""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence

import duckdb
import pydantic

from chessdb.db.duckdb_export_job_repository import DuckDbExportJobRepository
from chessdb.db.duckdb_import_job_repository import DuckDbImportJobRepository
from chessdb.errors import EnqueueError, InvalidExportFilterError, JobNotFoundError, ValidationError
from chessdb.export_filters import ExportFilter
from chessdb.export_job import EXPORT_MODE_IDS, EXPORT_MODE_QUERY
from chessdb.import_outcome import ImportCounters, ImportJobStatus
from chessdb.pgn_stream import ZSTD_SUFFIX
from chessdb.ports.blob_storage import BlobStorage
from chessdb.ports.job_queue import JobQueue, QueueName
from chessdb.utils.logger import get_logger

logger = get_logger(__name__)

IMPORT_CONTENT_TYPE = "application/x-chess-pgn"
ZSTD_CONTENT_TYPE = "application/zstd"


def import_object_key(user_id: int, *, compressed: bool) -> str:
    suffix = f".pgn{ZSTD_SUFFIX}" if compressed else ".pgn"
    return f"imports/user-{user_id}/{uuid.uuid4().hex}{suffix}"


def create_import_job(  # pylint: disable=too-many-arguments
    conn: duckdb.DuckDBPyConnection,
    storage: BlobStorage,
    queue: JobQueue,
    *,
    user_id: int,
    body: bytes,
    compressed: bool = False,
    strict_duplicate_mode: bool = False,
    max_games: int | None = None,
) -> dict[str, object]:
    """Upload the archive, persist a queued import job and enqueue it.

    When the queue refuses the job it is marked failed and ``EnqueueError``
    is raised, so no job stays queued without a worker.
    """
    if max_games is not None and max_games <= 0:
        raise ValidationError("max_games must be positive")
    key = import_object_key(user_id, compressed=compressed)
    storage.put_object(key, body, ZSTD_CONTENT_TYPE if compressed else IMPORT_CONTENT_TYPE)
    cursor = conn.cursor()
    try:
        jobs = DuckDbImportJobRepository(cursor)
        job_id = jobs.create_job(
            user_id,
            key,
            strict_duplicate_mode=strict_duplicate_mode,
            max_games=max_games,
        )
        try:
            queue.enqueue(QueueName.IMPORTS, {"importJobId": job_id, "userId": user_id})
        except Exception as exc:
            jobs.insert_error(job_id, None, f"Failed to enqueue import job: {exc}")
            jobs.update_progress(job_id, ImportJobStatus.FAILED, ImportCounters())
            logger.exception("Failed to enqueue import job %s", job_id)
            raise EnqueueError("Failed to enqueue import job") from exc
        logger.info("Queued import job %s for user %s (%s bytes)", job_id, user_id, len(body))
        return jobs.fetch_job(job_id) or {}
    finally:
        cursor.close()


def _validate_export_selection(
    game_ids: Sequence[int] | None,
    filter_query: Mapping[str, object] | None,
) -> tuple[str, list[int] | None, dict[str, object] | None]:
    if game_ids is not None:
        if filter_query is not None:
            raise InvalidExportFilterError("Pass either game ids or a filter, not both")
        if not game_ids:
            raise InvalidExportFilterError("Export id list must not be empty")
        if any(isinstance(game_id, bool) or int(game_id) <= 0 for game_id in game_ids):
            raise InvalidExportFilterError("Export game ids must be positive integers")
        return EXPORT_MODE_IDS, [int(game_id) for game_id in game_ids], None
    try:
        query = ExportFilter.model_validate(dict(filter_query or {}))
    except pydantic.ValidationError as exc:
        raise InvalidExportFilterError(str(exc)) from exc
    return EXPORT_MODE_QUERY, None, query.model_dump(mode="json", exclude_none=True)


def create_export_job(  # pylint: disable=too-many-arguments
    conn: duckdb.DuckDBPyConnection,
    queue: JobQueue,
    *,
    user_id: int,
    game_ids: Sequence[int] | None = None,
    filter_query: Mapping[str, object] | None = None,
    include_annotations: bool = False,
) -> dict[str, object]:
    """Validate the selection, persist a queued export job and enqueue it."""
    mode, ids, query = _validate_export_selection(game_ids, filter_query)
    cursor = conn.cursor()
    try:
        jobs = DuckDbExportJobRepository(cursor)
        job_id = jobs.create_job(
            user_id,
            mode=mode,
            game_ids=ids,
            filter_query=query,
            include_annotations=include_annotations,
        )
        try:
            queue.enqueue(QueueName.EXPORTS, {"exportJobId": job_id, "userId": user_id})
        except Exception as exc:
            jobs.mark_failed(job_id, f"Failed to enqueue export job: {exc}")
            logger.exception("Failed to enqueue export job %s", job_id)
            raise EnqueueError("Failed to enqueue export job") from exc
        return jobs.fetch_job(job_id) or {}
    finally:
        cursor.close()


def _enqueue_backfill(queue: JobQueue, queue_name: QueueName, user_id: int) -> dict[str, object]:
    payload: dict[str, object] = {"userId": user_id}
    try:
        queue.enqueue(queue_name, payload)
    except Exception as exc:
        logger.exception("Failed to enqueue %s for user %s", queue_name, user_id)
        raise EnqueueError(f"Failed to enqueue {queue_name}") from exc
    return {"queue": str(queue_name), **payload}


def enqueue_position_backfill(queue: JobQueue, *, user_id: int) -> dict[str, object]:
    return _enqueue_backfill(queue, QueueName.POSITION_BACKFILL, user_id)


def enqueue_opening_backfill(queue: JobQueue, *, user_id: int) -> dict[str, object]:
    return _enqueue_backfill(queue, QueueName.OPENING_BACKFILL, user_id)


def get_import_job(
    conn: duckdb.DuckDBPyConnection,
    *,
    user_id: int,
    import_job_id: int,
) -> dict[str, object]:
    """Return the job row plus its error rows."""
    cursor = conn.cursor()
    try:
        jobs = DuckDbImportJobRepository(cursor)
        job = jobs.fetch_job(import_job_id)
        if job is None or int(job["user_id"]) != user_id:
            raise JobNotFoundError(f"Import job {import_job_id} not found")
        job["errors"] = jobs.fetch_errors(import_job_id)
        return job
    finally:
        cursor.close()


def get_export_job(
    conn: duckdb.DuckDBPyConnection,
    *,
    user_id: int,
    export_job_id: int,
) -> dict[str, object]:
    cursor = conn.cursor()
    try:
        job = DuckDbExportJobRepository(cursor).fetch_job(export_job_id)
        if job is None or int(job["user_id"]) != user_id:
            raise JobNotFoundError(f"Export job {export_job_id} not found")
        return job
    finally:
        cursor.close()
