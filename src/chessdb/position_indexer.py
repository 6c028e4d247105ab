"""Replay SAN move lists into per-ply position rows."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace

import chess

from chessdb.fen import (
    board_from_fen,
    castling_rights,
    en_passant_square,
    fen_norm,
    material_key,
    side_to_move,
)
from chessdb.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class IndexedPosition:  # pylint: disable=too-many-instance-attributes
    """One position of a game, plus the move played from it when known."""

    ply: int
    fen_norm: str
    stm: str
    castling: str
    ep_square: str | None
    halfmove: int
    fullmove: int
    material_key: str
    next_move_uci: str | None = None
    next_fen_norm: str | None = None


def _snapshot(board: chess.Board, ply: int) -> IndexedPosition:
    return IndexedPosition(
        ply=ply,
        fen_norm=fen_norm(board),
        stm=side_to_move(board),
        castling=castling_rights(board),
        ep_square=en_passant_square(board),
        halfmove=board.halfmove_clock,
        fullmove=board.fullmove_number,
        material_key=material_key(board),
    )


def index_positions(
    san_moves: Sequence[str],
    starting_fen: str | None = None,
) -> list[IndexedPosition]:
    """
    Build position rows for plies 0..k.

    Every row except the last carries the UCI move played from it and the
    normalized FEN it leads to. If the move at ply k+1 cannot be played the
    replay stops there and rows 0..k are returned; a missing next move on
    the final row is how callers recognise such a partial index.

    Parameters
    ----------
    san_moves : Sequence[str]
        Mainline moves in SAN, in game order.
    starting_fen : str, optional
        Setup position; the standard start when omitted.

    Returns
    -------
    list[IndexedPosition]
        Rows ordered by ply, starting with ply 0.

    Raises
    ------
    InvalidFenError
        If ``starting_fen`` cannot be loaded. Illegal moves never raise.
    """
    board = board_from_fen(starting_fen)
    current = _snapshot(board, 0)
    rows: list[IndexedPosition] = []
    for ply, san in enumerate(san_moves, start=1):
        try:
            move = board.parse_san(san)
        except ValueError:
            logger.debug("Stopping position index at ply %s on move %r", ply, san)
            break
        board.push(move)
        following = _snapshot(board, ply)
        rows.append(replace(current, next_move_uci=move.uci(), next_fen_norm=following.fen_norm))
        current = following
    rows.append(current)
    return rows


def is_complete_index(rows: Sequence[IndexedPosition], move_count: int) -> bool:
    return len(rows) == move_count + 1
