"""Bind queue payloads to the job processors."""

from __future__ import annotations

from collections.abc import Callable

import duckdb

from chessdb.analysis_worker import process_analysis_job
from chessdb.config import Settings
from chessdb.engine_runner import EngineRunner
from chessdb.export_job import process_export_job
from chessdb.import_job import process_import_job
from chessdb.opening_backfill_job import process_opening_backfill_job
from chessdb.ports.blob_storage import BlobStorage
from chessdb.ports.job_queue import QueueName
from chessdb.position_backfill_job import process_position_backfill_job
from chessdb.utils.to_int import to_int

JobHandler = Callable[[dict[str, object]], object]


def _require_id(payload: dict[str, object], name: str) -> int:
    value = to_int(payload.get(name))
    if value is None:
        raise ValueError(f"Job payload is missing {name}: {payload}")
    return value


def build_job_handlers(
    conn: duckdb.DuckDBPyConnection,
    storage: BlobStorage,
    runner: EngineRunner,
    settings: Settings,
) -> dict[QueueName, JobHandler]:
    """Return one handler per queue, closed over the shared clients."""

    def handle_import(payload: dict[str, object]) -> object:
        return process_import_job(
            conn,
            storage,
            _require_id(payload, "importJobId"),
            _require_id(payload, "userId"),
            progress_interval=settings.import_progress_interval,
        )

    def handle_export(payload: dict[str, object]) -> object:
        return process_export_job(
            conn,
            storage,
            _require_id(payload, "exportJobId"),
            _require_id(payload, "userId"),
        )

    def handle_analysis(payload: dict[str, object]) -> object:
        return process_analysis_job(
            conn,
            runner,
            _require_id(payload, "analysisRequestId"),
            _require_id(payload, "userId"),
            settings.analysis,
        )

    def handle_position_backfill(payload: dict[str, object]) -> object:
        return process_position_backfill_job(conn, _require_id(payload, "userId"))

    def handle_opening_backfill(payload: dict[str, object]) -> object:
        return process_opening_backfill_job(conn, _require_id(payload, "userId"))

    return {
        QueueName.IMPORTS: handle_import,
        QueueName.EXPORTS: handle_export,
        QueueName.ANALYSIS: handle_analysis,
        QueueName.POSITION_BACKFILL: handle_position_backfill,
        QueueName.OPENING_BACKFILL: handle_opening_backfill,
    }
