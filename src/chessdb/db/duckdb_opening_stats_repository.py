"""Opening statistics persistence for DuckDB."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import astuple, dataclass

import duckdb

from chessdb.db._rows_to_dicts import _rows_to_dicts

_STAT_COLUMNS = (
    "user_id, fen_norm, move_uci, next_fen_norm, games, white_wins, black_wins, draws, "
    "avg_elo, performance, transpositions"
)


@dataclass(slots=True)
class OpeningStat:  # pylint: disable=too-many-instance-attributes
    """Aggregate for one (user, position, move) edge."""

    user_id: int
    fen_norm: str
    move_uci: str
    next_fen_norm: str | None
    games: int
    white_wins: int
    black_wins: int
    draws: int
    avg_elo: float | None
    performance: float | None
    transpositions: int


class DuckDbOpeningStatsRepository:
    """Encapsulates opening_stats reads and writes."""

    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self._conn = conn

    def fetch_stat(self, user_id: int, fen_norm: str, move_uci: str) -> OpeningStat | None:
        row = self._conn.execute(
            f"""
            SELECT {_STAT_COLUMNS}
            FROM opening_stats
            WHERE user_id = ? AND fen_norm = ? AND move_uci = ?
            """,
            [user_id, fen_norm, move_uci],
        ).fetchone()
        return OpeningStat(*row) if row else None

    def insert_stat(self, stat: OpeningStat) -> None:
        self.insert_stats([stat])

    def insert_stats(self, stats: Iterable[OpeningStat]) -> int:
        rows = [list(astuple(stat)) for stat in stats]
        if not rows:
            return 0
        self._conn.executemany(
            f"INSERT INTO opening_stats ({_STAT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            rows,
        )
        return len(rows)

    def update_stat(self, stat: OpeningStat) -> None:
        self._conn.execute(
            """
            UPDATE opening_stats
            SET next_fen_norm = ?,
                games = ?,
                white_wins = ?,
                black_wins = ?,
                draws = ?,
                avg_elo = ?,
                performance = ?,
                transpositions = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE user_id = ? AND fen_norm = ? AND move_uci = ?
            """,
            [
                stat.next_fen_norm,
                stat.games,
                stat.white_wins,
                stat.black_wins,
                stat.draws,
                stat.avg_elo,
                stat.performance,
                stat.transpositions,
                stat.user_id,
                stat.fen_norm,
                stat.move_uci,
            ],
        )

    def delete_for_user(self, user_id: int) -> None:
        self._conn.execute("DELETE FROM opening_stats WHERE user_id = ?", [user_id])

    def fetch_for_user(self, user_id: int) -> list[dict[str, object]]:
        result = self._conn.execute(
            f"""
            SELECT {_STAT_COLUMNS}
            FROM opening_stats
            WHERE user_id = ?
            ORDER BY fen_norm, move_uci
            """,
            [user_id],
        )
        return _rows_to_dicts(result)

    def fetch_edge_observations(self, user_id: int) -> list[tuple]:
        """Group the user's indexed edges with per-game values in (game, ply) order."""
        return self._conn.execute(
            """
            SELECT
                gp.fen_norm,
                gp.next_move_uci,
                first(gp.next_fen_norm ORDER BY gp.game_id, gp.ply) AS next_fen_norm,
                COUNT(*) AS games,
                SUM(CASE WHEN g.result = '1-0' THEN 1 ELSE 0 END) AS white_wins,
                SUM(CASE WHEN g.result = '0-1' THEN 1 ELSE 0 END) AS black_wins,
                SUM(CASE WHEN g.result = '1/2-1/2' THEN 1 ELSE 0 END) AS draws,
                list(
                    CASE
                        WHEN g.white_elo IS NOT NULL AND g.black_elo IS NOT NULL
                        THEN CAST(g.white_elo + g.black_elo AS DOUBLE) / 2
                        ELSE NULL
                    END
                    ORDER BY gp.game_id, gp.ply
                ) AS elo_values,
                list(
                    CASE
                        WHEN g.result = '1-0' THEN CAST(100 AS DOUBLE)
                        WHEN g.result = '1/2-1/2' THEN CAST(50 AS DOUBLE)
                        WHEN g.result = '0-1' THEN CAST(0 AS DOUBLE)
                        ELSE NULL
                    END
                    ORDER BY gp.game_id, gp.ply
                ) AS performance_values,
                GREATEST(COUNT(DISTINCT gp.next_fen_norm) - 1, 0) AS transpositions
            FROM game_positions gp
            JOIN games g
              ON g.id = gp.game_id
             AND g.user_id = gp.user_id
            WHERE gp.user_id = ?
              AND gp.next_move_uci IS NOT NULL
            GROUP BY gp.fen_norm, gp.next_move_uci
            ORDER BY gp.fen_norm, gp.next_move_uci
            """,
            [user_id],
        ).fetchall()
