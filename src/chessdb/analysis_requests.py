"""Create, cancel and observe engine-analysis requests."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass

import duckdb

from chessdb.config import DEFAULT_ANALYSIS_ENGINE, MAX_IN_FLIGHT_ANALYSIS_REQUESTS
from chessdb.db.duckdb_analysis_repository import (
    TERMINAL_ANALYSIS_STATUSES,
    DuckDbAnalysisRepository,
)
from chessdb.db.duckdb_unit_of_work import DuckDbUnitOfWork
from chessdb.errors import (
    AnalysisRequestNotFoundError,
    EnqueueError,
    TooManyInFlightRequestsError,
    ValidationError,
)
from chessdb.fen import normalize_fen
from chessdb.ports.job_queue import JobQueue, QueueName
from chessdb.ports.unit_of_work import transaction
from chessdb.utils.logger import get_logger

logger = get_logger(__name__)

ENQUEUE_FAILED_MESSAGE = "Failed to enqueue analysis request"


@dataclass(frozen=True, slots=True)
class AnalysisLimits:
    """Search limits; at least one must be set."""

    depth: int | None = None
    nodes: int | None = None
    time_ms: int | None = None

    def validate(self) -> None:
        values = (self.depth, self.nodes, self.time_ms)
        if all(value is None for value in values):
            raise ValidationError("An analysis request needs a depth, node or time limit")
        if any(value is not None and value <= 0 for value in values):
            raise ValidationError("Analysis limits must be positive")


def _fetch_owned(repository: DuckDbAnalysisRepository, user_id: int, request_id: int) -> dict[str, object]:
    row = repository.fetch_request(request_id)
    if row is None or int(row["user_id"]) != user_id:
        raise AnalysisRequestNotFoundError(f"Analysis request {request_id} not found")
    return row


def create_analysis_request(
    conn: duckdb.DuckDBPyConnection,
    queue: JobQueue,
    *,
    user_id: int,
    fen: str,
    limits: AnalysisLimits,
    engine: str = DEFAULT_ANALYSIS_ENGINE,
) -> dict[str, object]:
    """
    Register an analysis request and return its row.

    A cached engine line at least as deep as requested completes the request
    immediately without queueing work. Otherwise a queued row is stored and a
    job enqueued; if enqueueing fails the row is marked failed and
    ``EnqueueError`` is raised.

    The in-flight check and the insert are not serialized against each other,
    so a burst of concurrent calls from one user can briefly exceed the limit.

    Raises
    ------
    InvalidFenError
        The FEN cannot be loaded.
    TooManyInFlightRequestsError
        The user already has three queued or running requests.
    EnqueueError
        The queue refused the job.
    """
    limits.validate()
    fen_norm = normalize_fen(fen)
    cursor = conn.cursor()
    uow = DuckDbUnitOfWork(conn)
    try:
        repository = DuckDbAnalysisRepository(cursor)
        in_flight = repository.count_in_flight(user_id)
        if in_flight >= MAX_IN_FLIGHT_ANALYSIS_REQUESTS:
            raise TooManyInFlightRequestsError(in_flight, MAX_IN_FLIGHT_ANALYSIS_REQUESTS)
        cached = (
            repository.find_cached_line(user_id, fen_norm, engine, limits.depth)
            if limits.depth is not None
            else None
        )
        if cached is not None:
            with transaction(uow) as tx:
                cached_repository = DuckDbAnalysisRepository(tx)
                request_id = cached_repository.insert_request(
                    user_id,
                    fen=fen,
                    fen_norm=fen_norm,
                    engine=engine,
                    depth=limits.depth,
                    nodes=limits.nodes,
                    time_ms=limits.time_ms,
                    status="completed",
                )
                cached_repository.mark_completed(
                    request_id,
                    best_move=cached.get("best_move"),
                    principal_variation=cached.get("principal_variation"),
                    eval_cp=cached.get("eval_cp"),
                    eval_mate=cached.get("eval_mate"),
                    result_depth=cached.get("depth"),
                    from_cache=True,
                )
            logger.info("Analysis request %s served from cache line %s", request_id, cached["id"])
            return _fetch_owned(repository, user_id, request_id)
        request_id = repository.insert_request(
            user_id,
            fen=fen,
            fen_norm=fen_norm,
            engine=engine,
            depth=limits.depth,
            nodes=limits.nodes,
            time_ms=limits.time_ms,
            status="queued",
        )
        try:
            queue.enqueue(QueueName.ANALYSIS, {"analysisRequestId": request_id, "userId": user_id})
        except Exception as exc:
            repository.mark_failed(request_id, ENQUEUE_FAILED_MESSAGE)
            logger.exception("Failed to enqueue analysis request %s", request_id)
            raise EnqueueError(ENQUEUE_FAILED_MESSAGE) from exc
        return _fetch_owned(repository, user_id, request_id)
    finally:
        uow.close()
        cursor.close()


def cancel_analysis_request(
    conn: duckdb.DuckDBPyConnection,
    *,
    user_id: int,
    request_id: int,
) -> dict[str, object]:
    """Set the cancel flag; a queued request becomes cancelled at once.

    A running request keeps its status until the worker notices the flag.
    """
    cursor = conn.cursor()
    try:
        repository = DuckDbAnalysisRepository(cursor)
        if not repository.request_cancel(user_id, request_id):
            raise AnalysisRequestNotFoundError(f"Analysis request {request_id} not found")
        return _fetch_owned(repository, user_id, request_id)
    finally:
        cursor.close()


def get_analysis_request(
    conn: duckdb.DuckDBPyConnection,
    *,
    user_id: int,
    request_id: int,
) -> dict[str, object]:
    cursor = conn.cursor()
    try:
        return _fetch_owned(DuckDbAnalysisRepository(cursor), user_id, request_id)
    finally:
        cursor.close()


def store_engine_line(  # pylint: disable=too-many-arguments
    conn: duckdb.DuckDBPyConnection,
    *,
    user_id: int,
    fen: str,
    depth: int,
    best_move: str | None,
    principal_variation: list[str] | None = None,
    eval_cp: int | None = None,
    eval_mate: int | None = None,
    nodes: int | None = None,
    engine: str = DEFAULT_ANALYSIS_ENGINE,
) -> int:
    """Persist an evaluation so later requests for the position hit the cache."""
    if depth <= 0:
        raise ValidationError("Engine line depth must be positive")
    cursor = conn.cursor()
    try:
        return DuckDbAnalysisRepository(cursor).insert_engine_line(
            user_id,
            fen_norm=normalize_fen(fen),
            engine=engine,
            depth=depth,
            best_move=best_move,
            principal_variation=principal_variation,
            eval_cp=eval_cp,
            eval_mate=eval_mate,
            nodes=nodes,
        )
    finally:
        cursor.close()


def is_terminal_status(status: object) -> bool:
    return str(status) in TERMINAL_ANALYSIS_STATUSES


def iter_analysis_status(
    fetch_status: Callable[[], dict[str, object]],
    *,
    interval_s: float,
    should_stop: Callable[[], bool] = lambda: False,
    sleep: Callable[[float], None] = time.sleep,
) -> Iterator[dict[str, object]]:
    """Yield the request row every ``interval_s`` until it is terminal.

    Single-pass; stops early once ``should_stop`` reports the client is gone.
    """
    while not should_stop():
        row = fetch_status()
        yield row
        if is_terminal_status(row.get("status")):
            return
        sleep(interval_s)
