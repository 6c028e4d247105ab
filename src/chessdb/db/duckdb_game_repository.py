"""Game persistence for DuckDB-backed storage."""

from __future__ import annotations

import json
from dataclasses import dataclass

import duckdb

from chessdb.db._rows_to_dicts import _rows_to_dicts
from chessdb.normalize_game import NormalizedGame


@dataclass(frozen=True, slots=True)
class ExistingGame:
    """Identity of a stored game and the import that created it."""

    game_id: int
    import_job_id: int | None
    import_offset: int | None


class DuckDbGameRepository:
    """Encapsulates games, game_pgn and game_moves persistence."""

    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self._conn = conn

    def find_by_moves_hash(self, user_id: int, moves_hash: str) -> ExistingGame | None:
        row = self._conn.execute(
            """
            SELECT id, import_job_id, import_offset
            FROM games
            WHERE user_id = ? AND moves_hash = ?
            """,
            [user_id, moves_hash],
        ).fetchone()
        return ExistingGame(*row) if row else None

    def find_by_canonical_hash(self, user_id: int, canonical_hash: str) -> int | None:
        row = self._conn.execute(
            """
            SELECT id
            FROM games
            WHERE user_id = ? AND canonical_pgn_hash = ?
            LIMIT 1
            """,
            [user_id, canonical_hash],
        ).fetchone()
        return int(row[0]) if row else None

    def insert_game(
        self,
        user_id: int,
        game: NormalizedGame,
        *,
        import_job_id: int | None = None,
        import_offset: int | None = None,
    ) -> int:
        """Insert the game row; raises duckdb.ConstraintException on a moves-hash clash."""
        row = self._conn.execute(
            """
            INSERT INTO games (
                user_id, white, white_norm, black, black_norm, result,
                event, event_norm, site, eco, time_control, rated,
                played_on, played_year, white_elo, black_elo, ply_count,
                starting_fen, source, license, moves_hash, canonical_pgn_hash,
                import_job_id, import_offset
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            [
                user_id,
                game.white,
                game.white_norm,
                game.black,
                game.black_norm,
                game.result.value,
                game.event,
                game.event_norm,
                game.site,
                game.eco,
                game.time_control,
                game.rated,
                game.played_on,
                game.played_year,
                game.white_elo,
                game.black_elo,
                game.ply_count,
                game.starting_fen,
                game.source,
                game.license,
                game.moves_hash,
                game.canonical_hash,
                import_job_id,
                import_offset,
            ],
        ).fetchone()
        return int(row[0])

    def insert_pgn(self, user_id: int, game_id: int, pgn_text: str) -> None:
        self._conn.execute(
            "INSERT INTO game_pgn (game_id, user_id, pgn_text) VALUES (?, ?, ?)",
            [game_id, user_id, pgn_text],
        )

    def insert_move_tree(self, user_id: int, game_id: int, move_tree: dict[str, object]) -> None:
        self._conn.execute(
            "INSERT INTO game_moves (game_id, user_id, move_tree) VALUES (?, ?, ?)",
            [game_id, user_id, json.dumps(move_tree)],
        )

    def count_games(self, user_id: int) -> int:
        row = self._conn.execute("SELECT COUNT(*) FROM games WHERE user_id = ?", [user_id]).fetchone()
        return int(row[0]) if row else 0

    def fetch_games_missing_positions(self, user_id: int) -> list[dict[str, object]]:
        """Games without a ply-0 position row, oldest first."""
        result = self._conn.execute(
            """
            SELECT g.id, g.result, g.white_elo, g.black_elo, g.starting_fen,
                   gm.move_tree, gp.pgn_text
            FROM games g
            LEFT JOIN game_moves gm ON gm.game_id = g.id
            LEFT JOIN game_pgn gp ON gp.game_id = g.id
            WHERE g.user_id = ?
              AND NOT EXISTS (
                  SELECT 1
                  FROM game_positions pos
                  WHERE pos.user_id = g.user_id
                    AND pos.game_id = g.id
                    AND pos.ply = 0
              )
            ORDER BY g.id
            """,
            [user_id],
        )
        return _rows_to_dicts(result)
