"""Wire the process-wide database, blob, queue and engine clients."""

from __future__ import annotations

from dataclasses import dataclass

import duckdb

from chessdb.config import Settings
from chessdb.db.duckdb_dead_letter_repository import DuckDbDeadLetterRepository
from chessdb.db.duckdb_store import get_connection, init_schema
from chessdb.engine_runner import EngineRunner, StockfishEngineRunner
from chessdb.in_process_queue import InProcessJobQueue, pool_sizes
from chessdb.job_handlers import build_job_handlers
from chessdb.local_blob_storage import LocalBlobStorage
from chessdb.ports.blob_storage import BlobStorage
from chessdb.ports.job_queue import QueueName
from chessdb.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Services:
    """Long-lived clients shared by the HTTP layer and the workers."""

    settings: Settings
    conn: duckdb.DuckDBPyConnection
    storage: BlobStorage
    queue: InProcessJobQueue
    runner: EngineRunner

    def start(self) -> None:
        self.queue.start()

    def close(self) -> None:
        self.queue.stop()
        self.conn.close()


def build_services(
    settings: Settings,
    *,
    conn: duckdb.DuckDBPyConnection | None = None,
    storage: BlobStorage | None = None,
    runner: EngineRunner | None = None,
) -> Services:
    """Open the clients, apply migrations and register the queue handlers.

    Workers are not started; call :meth:`Services.start`.
    """
    conn = conn if conn is not None else get_connection(settings.duckdb_path)
    init_schema(conn)
    storage = storage if storage is not None else LocalBlobStorage(settings.blob_root)
    storage.ensure_bucket()
    runner = runner if runner is not None else StockfishEngineRunner(
        settings.analysis.stockfish_path,
        cancel_poll_ms=settings.analysis.cancel_poll_ms,
        timeout_ms=settings.analysis.timeout_ms,
    )

    def record_dead_letter(queue_name: QueueName, payload: dict[str, object], exc: BaseException) -> None:
        cursor = conn.cursor()
        try:
            DuckDbDeadLetterRepository(cursor).record(queue_name, payload, exc)
        finally:
            cursor.close()

    queue = InProcessJobQueue(pool_sizes(settings), dead_letter=record_dead_letter)
    for queue_name, handler in build_job_handlers(conn, storage, runner, settings).items():
        queue.register(queue_name, handler)
    logger.info("Services ready: duckdb=%s blobs=%s", settings.duckdb_path, settings.blob_root)
    return Services(settings=settings, conn=conn, storage=storage, queue=queue, runner=runner)
