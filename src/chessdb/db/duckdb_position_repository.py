"""Position persistence for DuckDB-backed storage."""

from __future__ import annotations

from collections.abc import Sequence

import duckdb

from chessdb.db._rows_to_dicts import _rows_to_dicts
from chessdb.position_indexer import IndexedPosition


def _build_position_values(
    user_id: int,
    game_id: int,
    position: IndexedPosition,
) -> list[object]:
    return [
        user_id,
        game_id,
        position.ply,
        position.fen_norm,
        position.stm,
        position.castling,
        position.ep_square,
        position.halfmove,
        position.fullmove,
        position.material_key,
        position.next_move_uci,
        position.next_fen_norm,
    ]


class DuckDbPositionRepository:
    """Encapsulates game_positions persistence and reads."""

    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self._conn = conn

    def upsert_positions(
        self,
        user_id: int,
        game_id: int,
        positions: Sequence[IndexedPosition],
    ) -> int:
        """Insert or refresh rows by (user, game, ply) and drop rows past the new last ply."""
        if positions:
            self._conn.executemany(
                """
                INSERT INTO game_positions (
                    user_id, game_id, ply, fen_norm, stm, castling, ep_square,
                    halfmove, fullmove, material_key, next_move_uci, next_fen_norm
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (user_id, game_id, ply) DO UPDATE SET
                    fen_norm = EXCLUDED.fen_norm,
                    stm = EXCLUDED.stm,
                    castling = EXCLUDED.castling,
                    ep_square = EXCLUDED.ep_square,
                    halfmove = EXCLUDED.halfmove,
                    fullmove = EXCLUDED.fullmove,
                    material_key = EXCLUDED.material_key,
                    next_move_uci = EXCLUDED.next_move_uci,
                    next_fen_norm = EXCLUDED.next_fen_norm
                """,
                [_build_position_values(user_id, game_id, position) for position in positions],
            )
        self._conn.execute(
            "DELETE FROM game_positions WHERE user_id = ? AND game_id = ? AND ply >= ?",
            [user_id, game_id, len(positions)],
        )
        return len(positions)

    def fetch_positions(self, user_id: int, game_id: int) -> list[dict[str, object]]:
        result = self._conn.execute(
            """
            SELECT ply, fen_norm, stm, castling, ep_square, halfmove, fullmove,
                   material_key, next_move_uci, next_fen_norm
            FROM game_positions
            WHERE user_id = ? AND game_id = ?
            ORDER BY ply
            """,
            [user_id, game_id],
        )
        return _rows_to_dicts(result)
