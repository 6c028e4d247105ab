import unittest

import chess
import pytest

from chessdb.errors import InvalidFenError
from chessdb.fen import en_passant_square, material_key, normalize_fen
from chessdb.position_indexer import index_positions, is_complete_index

START_EPD = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq -"


class IndexPositionsTests(unittest.TestCase):
    def test_four_moves_give_five_rows(self) -> None:
        rows = index_positions(["e4", "e5", "Nf3", "Nc6"])
        self.assertEqual([row.ply for row in rows], [0, 1, 2, 3, 4])
        self.assertEqual(rows[0].fen_norm, START_EPD)
        self.assertEqual(
            [row.next_move_uci for row in rows],
            ["e2e4", "e7e5", "g1f3", "b8c6", None],
        )
        for current, following in zip(rows, rows[1:]):
            self.assertEqual(current.next_fen_norm, following.fen_norm)
        self.assertIsNone(rows[-1].next_fen_norm)
        self.assertTrue(is_complete_index(rows, 4))

    def test_row_fields_follow_the_board(self) -> None:
        rows = index_positions(["e4", "e5", "Nf3", "Nc6"])
        self.assertEqual([row.stm for row in rows], ["w", "b", "w", "b", "w"])
        self.assertEqual(rows[4].castling, "KQkq")
        self.assertEqual(rows[2].halfmove, 0)
        self.assertEqual(rows[3].halfmove, 1)
        self.assertEqual(rows[4].fullmove, 3)
        self.assertEqual(rows[0].material_key, "w:K1Q1R2B2N2P8|b:K1Q1R2B2N2P8")

    def test_illegal_move_stops_the_index(self) -> None:
        rows = index_positions(["e4", "e5", "Ke3", "Nc6"])
        self.assertEqual(len(rows), 3)
        self.assertIsNone(rows[-1].next_move_uci)
        self.assertFalse(is_complete_index(rows, 4))

    def test_empty_move_list_gives_start_row(self) -> None:
        rows = index_positions([])
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].fen_norm, START_EPD)

    def test_starting_fen_is_respected(self) -> None:
        fen = "4k3/8/8/8/8/8/4P3/4K3 w - - 0 1"
        rows = index_positions(["e4"], fen)
        self.assertEqual(rows[0].fen_norm, "4k3/8/8/8/8/8/4P3/4K3 w - -")
        self.assertEqual(rows[1].castling, "-")

    def test_transpositions_share_fen_norm(self) -> None:
        first = index_positions(["Nf3", "Nf6", "g3"])
        second = index_positions(["g3", "Nf6", "Nf3"])
        self.assertEqual(first[-1].fen_norm, second[-1].fen_norm)


def test_en_passant_only_recorded_when_capturable():
    rows = index_positions(["e4", "a6", "e5", "d5"])
    assert rows[1].ep_square is None
    assert rows[4].ep_square == "d6"
    assert rows[4].fen_norm.endswith(" d6")


def test_invalid_starting_fen_raises():
    with pytest.raises(InvalidFenError):
        index_positions(["e4"], "8/8/8/8/8/8/8/8 w - - 0 1")


def test_normalize_fen_drops_move_counters():
    assert normalize_fen("rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 12 40") == START_EPD


def test_material_key_counts_captures():
    board = chess.Board()
    for san in ["e4", "d5", "exd5"]:
        board.push_san(san)
    assert material_key(board) == "w:K1Q1R2B2N2P8|b:K1Q1R2B2N2P7"
    assert en_passant_square(board) is None
