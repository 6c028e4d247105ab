"""Re-derive position rows for games that have none."""

from __future__ import annotations

import json
from dataclasses import dataclass

import duckdb

from chessdb.db.duckdb_game_repository import DuckDbGameRepository
from chessdb.db.duckdb_position_repository import DuckDbPositionRepository
from chessdb.db.duckdb_unit_of_work import DuckDbUnitOfWork
from chessdb.errors import RecordError
from chessdb.game_result import GameResult
from chessdb.opening_stats import upsert_game_opening_stats
from chessdb.pgn_parser import parse_pgn
from chessdb.ports.unit_of_work import transaction
from chessdb.position_indexer import index_positions
from chessdb.user_locks import user_write_lock
from chessdb.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class PositionBackfillResult:
    indexed_games: int = 0
    positions: int = 0
    skipped_games: int = 0


def _mainline_for(row: dict[str, object]) -> list[str]:
    move_tree = row.get("move_tree")
    if move_tree:
        mainline = json.loads(str(move_tree)).get("mainline")
        if isinstance(mainline, list):
            return [str(san) for san in mainline]
    return parse_pgn(str(row.get("pgn_text") or "")).moves


def _avg_elo(row: dict[str, object]) -> float | None:
    white_elo, black_elo = row.get("white_elo"), row.get("black_elo")
    if white_elo is None or black_elo is None:
        return None
    return (int(white_elo) + int(black_elo)) / 2


def process_position_backfill_job(
    conn: duckdb.DuckDBPyConnection,
    user_id: int,
) -> PositionBackfillResult:
    """Index every game of the user that lacks a ply-0 position.

    Each game commits on its own together with its opening-stat increments, so
    a crash leaves finished games indexed and a re-run picks up the rest.
    Games whose stored moves cannot be read are logged and skipped.
    """
    result = PositionBackfillResult()
    reader = conn.cursor()
    uow = DuckDbUnitOfWork(conn)
    try:
        pending = DuckDbGameRepository(reader).fetch_games_missing_positions(user_id)
        logger.info("Position backfill for user %s: %s games pending", user_id, len(pending))
        for row in pending:
            game_id = int(row["id"])
            try:
                positions = index_positions(_mainline_for(row), row.get("starting_fen"))
            except (RecordError, ValueError) as exc:
                result.skipped_games += 1
                logger.warning("Position backfill skipped game %s: %s", game_id, exc)
                continue
            with user_write_lock(user_id), transaction(uow) as cursor:
                DuckDbPositionRepository(cursor).upsert_positions(user_id, game_id, positions)
                upsert_game_opening_stats(
                    cursor,
                    user_id=user_id,
                    positions=positions,
                    result=GameResult.from_tag(str(row.get("result") or "*")),
                    avg_elo=_avg_elo(row),
                )
            result.indexed_games += 1
            result.positions += len(positions)
    finally:
        uow.close()
        reader.close()
    logger.info(
        "Position backfill for user %s done: %s games, %s positions, %s skipped",
        user_id,
        result.indexed_games,
        result.positions,
        result.skipped_games,
    )
    return result
