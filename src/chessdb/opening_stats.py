"""Incremental and bulk maintenance of the opening_stats table."""

from __future__ import annotations

from collections.abc import Iterable

import duckdb

from chessdb.db.duckdb_opening_stats_repository import DuckDbOpeningStatsRepository, OpeningStat
from chessdb.game_result import GameResult
from chessdb.position_indexer import IndexedPosition
from chessdb.running_average import fold_average, running_average


def _outcome_counts(result: GameResult) -> tuple[int, int, int]:
    return (
        int(result is GameResult.WHITE_WIN),
        int(result is GameResult.BLACK_WIN),
        int(result is GameResult.DRAW),
    )


def apply_game_observation(
    stat: OpeningStat | None,
    *,
    user_id: int,
    position: IndexedPosition,
    result: GameResult,
    avg_elo: float | None,
) -> OpeningStat:
    """Return the edge aggregate after counting one more game through it."""
    white_wins, black_wins, draws = _outcome_counts(result)
    performance = result.white_score
    if stat is None:
        return OpeningStat(
            user_id=user_id,
            fen_norm=position.fen_norm,
            move_uci=str(position.next_move_uci),
            next_fen_norm=position.next_fen_norm,
            games=1,
            white_wins=white_wins,
            black_wins=black_wins,
            draws=draws,
            avg_elo=running_average(None, 0, avg_elo),
            performance=running_average(None, 0, performance),
            transpositions=0,
        )
    transposed = (
        stat.next_fen_norm is not None
        and position.next_fen_norm is not None
        and stat.next_fen_norm != position.next_fen_norm
    )
    return OpeningStat(
        user_id=stat.user_id,
        fen_norm=stat.fen_norm,
        move_uci=stat.move_uci,
        next_fen_norm=stat.next_fen_norm or position.next_fen_norm,
        games=stat.games + 1,
        white_wins=stat.white_wins + white_wins,
        black_wins=stat.black_wins + black_wins,
        draws=stat.draws + draws,
        avg_elo=running_average(stat.avg_elo, stat.games, avg_elo),
        performance=running_average(stat.performance, stat.games, performance),
        transpositions=stat.transpositions + int(transposed),
    )


def upsert_game_opening_stats(
    conn: duckdb.DuckDBPyConnection,
    *,
    user_id: int,
    positions: Iterable[IndexedPosition],
    result: GameResult,
    avg_elo: float | None,
) -> int:
    """Count one game into every edge it plays; returns the number of edges touched.

    Must run inside the caller's transaction so the game's rows and its
    statistics become visible together.
    """
    repository = DuckDbOpeningStatsRepository(conn)
    touched = 0
    for position in positions:
        if position.next_move_uci is None:
            continue
        existing = repository.fetch_stat(user_id, position.fen_norm, position.next_move_uci)
        updated = apply_game_observation(
            existing,
            user_id=user_id,
            position=position,
            result=result,
            avg_elo=avg_elo,
        )
        if existing is None:
            repository.insert_stat(updated)
        else:
            repository.update_stat(updated)
        touched += 1
    return touched


def rebuild_opening_stats(conn: duckdb.DuckDBPyConnection, user_id: int) -> int:
    """Replace the user's opening_stats with a fresh aggregate of indexed positions.

    The caller owns the transaction; on failure it must roll back so the old
    rows are restored.
    """
    repository = DuckDbOpeningStatsRepository(conn)
    observations = repository.fetch_edge_observations(user_id)
    repository.delete_for_user(user_id)
    stats = [
        OpeningStat(
            user_id=user_id,
            fen_norm=fen,
            move_uci=move_uci,
            next_fen_norm=next_fen,
            games=int(games),
            white_wins=int(white_wins),
            black_wins=int(black_wins),
            draws=int(draws),
            avg_elo=fold_average(elo_values),
            performance=fold_average(performance_values),
            transpositions=int(transpositions),
        )
        for (
            fen,
            move_uci,
            next_fen,
            games,
            white_wins,
            black_wins,
            draws,
            elo_values,
            performance_values,
            transpositions,
        ) in observations
    ]
    return repository.insert_stats(stats)
