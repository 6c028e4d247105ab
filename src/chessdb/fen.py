"""FEN helpers built on python-chess."""

from __future__ import annotations

import chess

from chessdb.errors import InvalidFenError

_MATERIAL_ORDER = (
    (chess.KING, "K"),
    (chess.QUEEN, "Q"),
    (chess.ROOK, "R"),
    (chess.BISHOP, "B"),
    (chess.KNIGHT, "N"),
    (chess.PAWN, "P"),
)


def board_from_fen(fen: str | None) -> chess.Board:
    """Return a board for ``fen``, or the standard start when ``fen`` is empty."""
    if fen is None or not fen.strip():
        return chess.Board()
    try:
        board = chess.Board(" ".join(fen.split()))
    except ValueError as exc:
        raise InvalidFenError(f"Invalid FEN: {fen[:100]}") from exc
    if not board.is_valid():
        raise InvalidFenError(f"Impossible position in FEN: {fen[:100]}")
    return board


def fen_norm(board: chess.Board) -> str:
    """Board, side to move, castling rights and a legal en-passant square.

    Move counters are dropped so transpositions compare equal.
    """
    return board.epd()


def normalize_fen(fen: str) -> str:
    return fen_norm(board_from_fen(fen))


def side_to_move(board: chess.Board) -> str:
    return "w" if board.turn == chess.WHITE else "b"


def castling_rights(board: chess.Board) -> str:
    return board.castling_xfen()


def en_passant_square(board: chess.Board) -> str | None:
    if board.ep_square is None or not board.has_legal_en_passant():
        return None
    return chess.square_name(board.ep_square)


def material_key(board: chess.Board) -> str:
    """Piece counts per side, e.g. ``w:K1Q1R2B2N2P8|b:K1Q1R2B2N2P8``."""
    sides = []
    for color, prefix in ((chess.WHITE, "w"), (chess.BLACK, "b")):
        counts = "".join(
            f"{symbol}{len(board.pieces(piece_type, color))}" for piece_type, symbol in _MATERIAL_ORDER
        )
        sides.append(f"{prefix}:{counts}")
    return "|".join(sides)
