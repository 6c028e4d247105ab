"""Queue handler that runs a stored analysis request through an engine."""

from __future__ import annotations

import duckdb

from chessdb.config import AnalysisSettings
from chessdb.db.duckdb_analysis_repository import (
    TERMINAL_ANALYSIS_STATUSES,
    DuckDbAnalysisRepository,
)
from chessdb.engine_runner import EngineRunner
from chessdb.errors import AnalysisRequestNotFoundError
from chessdb.utils.logger import get_logger

logger = get_logger(__name__)


def process_analysis_job(
    conn: duckdb.DuckDBPyConnection,
    runner: EngineRunner,
    request_id: int,
    user_id: int,
    settings: AnalysisSettings | None = None,
) -> str:
    """
    Execute one analysis request and return its final status.

    A request whose cancel flag is already set is marked cancelled without
    starting the engine; a request that is already terminal is left alone so
    a re-delivered job is harmless. While the engine runs, the cancel flag is
    polled through a separate cursor. Engine failures mark the request failed
    and propagate to the queue.
    """
    settings = settings or AnalysisSettings()
    cursor = conn.cursor()
    poll_cursor = conn.cursor()
    try:
        repository = DuckDbAnalysisRepository(cursor)
        row = repository.fetch_request(request_id)
        if row is None or int(row["user_id"]) != user_id:
            raise AnalysisRequestNotFoundError(f"Analysis request {request_id} not found")
        status = str(row["status"])
        if status in TERMINAL_ANALYSIS_STATUSES:
            logger.info("Analysis request %s already %s; skipping", request_id, status)
            return status
        if row["cancel_requested"]:
            repository.mark_cancelled(request_id)
            return "cancelled"
        if not repository.mark_running(request_id):
            return str(repository.fetch_request(request_id)["status"])

        poll_repository = DuckDbAnalysisRepository(poll_cursor)
        depth = row["depth"]
        if depth is None and row["nodes"] is None and row["time_ms"] is None:
            depth = settings.default_depth
        try:
            result = runner.analyse(
                str(row["fen"]),
                depth=depth,
                nodes=row["nodes"],
                time_ms=row["time_ms"],
                should_cancel=lambda: poll_repository.fetch_cancel_requested(request_id),
            )
        except Exception as exc:
            logger.exception("Analysis request %s failed", request_id)
            repository.mark_failed(request_id, exc)
            raise

        if result.cancelled:
            repository.mark_cancelled(request_id)
            logger.info("Analysis request %s cancelled while running", request_id)
            return "cancelled"
        repository.mark_completed(
            request_id,
            best_move=result.best_move,
            principal_variation=result.pv,
            eval_cp=result.eval_cp,
            eval_mate=result.eval_mate,
            result_depth=result.depth,
        )
        if result.depth:
            repository.insert_engine_line(
                user_id,
                fen_norm=str(row["fen_norm"]),
                engine=str(row["engine"]),
                depth=result.depth,
                best_move=result.best_move,
                principal_variation=result.pv,
                eval_cp=result.eval_cp,
                eval_mate=result.eval_mate,
                nodes=result.nodes,
            )
        return "completed"
    finally:
        poll_cursor.close()
        cursor.close()
