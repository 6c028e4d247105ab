"""Engine request and engine line persistence for DuckDB-backed storage."""

from __future__ import annotations

from collections.abc import Sequence

import duckdb

from chessdb.db._rows_to_dicts import _row_to_dict
from chessdb.utils.truncate import truncate_message

IN_FLIGHT_STATUSES = ("queued", "running")
TERMINAL_ANALYSIS_STATUSES = frozenset({"completed", "failed", "cancelled"})


def _join_pv(principal_variation: Sequence[str] | str | None) -> str | None:
    if principal_variation is None:
        return None
    if isinstance(principal_variation, str):
        return principal_variation or None
    return " ".join(principal_variation) or None


class DuckDbAnalysisRepository:
    """Encapsulates engine_requests and engine_lines persistence."""

    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self._conn = conn

    def count_in_flight(self, user_id: int) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM engine_requests WHERE user_id = ? AND status IN (?, ?)",
            [user_id, *IN_FLIGHT_STATUSES],
        ).fetchone()
        return int(row[0]) if row else 0

    def find_cached_line(
        self,
        user_id: int,
        fen_norm: str,
        engine: str,
        min_depth: int,
    ) -> dict[str, object] | None:
        """Deepest, then newest, stored line at least ``min_depth`` deep."""
        return _row_to_dict(
            self._conn.execute(
                """
                SELECT id, depth, best_move, principal_variation, eval_cp, eval_mate, nodes
                FROM engine_lines
                WHERE user_id = ? AND fen_norm = ? AND engine = ? AND depth >= ?
                ORDER BY depth DESC, created_at DESC, id DESC
                LIMIT 1
                """,
                [user_id, fen_norm, engine, min_depth],
            )
        )

    def insert_request(  # pylint: disable=too-many-arguments
        self,
        user_id: int,
        *,
        fen: str,
        fen_norm: str,
        engine: str,
        depth: int | None,
        nodes: int | None,
        time_ms: int | None,
        status: str,
    ) -> int:
        row = self._conn.execute(
            """
            INSERT INTO engine_requests (user_id, fen, fen_norm, engine, depth, nodes, time_ms, status)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            [user_id, fen, fen_norm, engine, depth, nodes, time_ms, status],
        ).fetchone()
        return int(row[0])

    def fetch_request(self, request_id: int) -> dict[str, object] | None:
        return _row_to_dict(
            self._conn.execute("SELECT * FROM engine_requests WHERE id = ?", [request_id])
        )

    def fetch_cancel_requested(self, request_id: int) -> bool:
        row = self._conn.execute(
            "SELECT cancel_requested FROM engine_requests WHERE id = ?",
            [request_id],
        ).fetchone()
        return bool(row and row[0])

    def request_cancel(self, user_id: int, request_id: int) -> bool:
        """Flag the request; a queued one becomes cancelled at once."""
        row = self._conn.execute(
            """
            UPDATE engine_requests
            SET cancel_requested = TRUE,
                status = CASE WHEN status = 'queued' THEN 'cancelled' ELSE status END,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND user_id = ?
            RETURNING id
            """,
            [request_id, user_id],
        ).fetchone()
        return row is not None

    def mark_running(self, request_id: int) -> bool:
        row = self._conn.execute(
            """
            UPDATE engine_requests
            SET status = 'running', updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND status IN ('queued', 'running')
            RETURNING id
            """,
            [request_id],
        ).fetchone()
        return row is not None

    def mark_cancelled(self, request_id: int) -> None:
        self._conn.execute(
            """
            UPDATE engine_requests
            SET status = 'cancelled', updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            [request_id],
        )

    def mark_failed(self, request_id: int, error: object) -> None:
        self._conn.execute(
            """
            UPDATE engine_requests
            SET status = 'failed', error_message = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            [truncate_message(error), request_id],
        )

    def mark_completed(  # pylint: disable=too-many-arguments
        self,
        request_id: int,
        *,
        best_move: str | None,
        principal_variation: Sequence[str] | str | None,
        eval_cp: int | None,
        eval_mate: int | None,
        result_depth: int | None,
        from_cache: bool = False,
    ) -> None:
        self._conn.execute(
            """
            UPDATE engine_requests
            SET status = 'completed',
                best_move = ?,
                principal_variation = ?,
                eval_cp = ?,
                eval_mate = ?,
                result_depth = ?,
                from_cache = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            [
                best_move,
                _join_pv(principal_variation),
                eval_cp,
                eval_mate,
                result_depth,
                from_cache,
                request_id,
            ],
        )

    def insert_engine_line(  # pylint: disable=too-many-arguments
        self,
        user_id: int,
        *,
        fen_norm: str,
        engine: str,
        depth: int,
        best_move: str | None,
        principal_variation: Sequence[str] | str | None,
        eval_cp: int | None,
        eval_mate: int | None,
        nodes: int | None,
    ) -> int:
        row = self._conn.execute(
            """
            INSERT INTO engine_lines (
                user_id, fen_norm, engine, depth, best_move, principal_variation,
                eval_cp, eval_mate, nodes
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            [
                user_id,
                fen_norm,
                engine,
                depth,
                best_move,
                _join_pv(principal_variation),
                eval_cp,
                eval_mate,
                nodes,
            ],
        ).fetchone()
        return int(row[0])
