"""Rebuild a user's opening statistics from indexed positions."""

from __future__ import annotations

import duckdb

from chessdb.db.duckdb_unit_of_work import DuckDbUnitOfWork
from chessdb.opening_stats import rebuild_opening_stats
from chessdb.ports.unit_of_work import transaction
from chessdb.user_locks import user_write_lock
from chessdb.utils.logger import get_logger

logger = get_logger(__name__)


def process_opening_backfill_job(conn: duckdb.DuckDBPyConnection, user_id: int) -> int:
    """Delete and recompute all opening_stats rows for the user in one transaction.

    Returns the number of rebuilt rows. Any failure rolls back to the previous
    table contents before propagating.
    """
    uow = DuckDbUnitOfWork(conn)
    try:
        with user_write_lock(user_id), transaction(uow) as cursor:
            rebuilt = rebuild_opening_stats(cursor, user_id)
    except Exception:
        logger.exception("Opening backfill for user %s failed", user_id)
        raise
    finally:
        uow.close()
    logger.info("Opening backfill for user %s rebuilt %s rows", user_id, rebuilt)
    return rebuilt
