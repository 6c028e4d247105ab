import unittest
from pathlib import Path
from unittest.mock import patch

import chess
import chess.engine

from chessdb.engine_runner import EngineAnalysis, StockfishEngineRunner, build_limit
from chessdb.errors import EngineUnavailableError


class EngineAnalysisTests(unittest.TestCase):
    def test_from_info_reads_score_from_side_to_move(self) -> None:
        board = chess.Board()
        board.push_san("e4")
        info = {
            "score": chess.engine.PovScore(chess.engine.Cp(-40), chess.WHITE),
            "pv": [chess.Move.from_uci("e7e5"), chess.Move.from_uci("g1f3")],
            "depth": 14,
            "nodes": 123456,
        }

        result = EngineAnalysis.from_info(info, board)

        self.assertEqual(result.best_move, "e7e5")
        self.assertEqual(result.pv, ["e7e5", "g1f3"])
        self.assertEqual(result.eval_cp, 40)
        self.assertIsNone(result.eval_mate)
        self.assertEqual(result.depth, 14)
        self.assertEqual(result.nodes, 123456)
        self.assertFalse(result.cancelled)

    def test_mate_scores_clear_centipawns(self) -> None:
        board = chess.Board()
        info = {"score": chess.engine.PovScore(chess.engine.Mate(3), chess.WHITE)}

        result = EngineAnalysis.from_info(info, board)

        self.assertEqual(result.eval_mate, 3)
        self.assertIsNone(result.eval_cp)
        self.assertIsNone(result.best_move)
        self.assertEqual(result.pv, [])


class BuildLimitTests(unittest.TestCase):
    def test_time_is_converted_to_seconds(self) -> None:
        limit = build_limit(depth=None, nodes=None, time_ms=1500)
        self.assertEqual(limit.time, 1.5)
        self.assertIsNone(limit.depth)

    def test_depth_and_nodes_pass_through(self) -> None:
        limit = build_limit(depth=18, nodes=10_000, time_ms=None)
        self.assertEqual((limit.depth, limit.nodes, limit.time), (18, 10_000, None))


class StockfishEngineRunnerTests(unittest.TestCase):
    def test_missing_binary_raises_engine_unavailable(self) -> None:
        runner = StockfishEngineRunner(Path("/nonexistent/stockfish"), cancel_poll_ms=10, timeout_ms=100)
        with patch("chessdb.engine_runner.shutil.which", return_value=None):
            with self.assertRaises(EngineUnavailableError):
                runner.analyse(
                    chess.STARTING_FEN,
                    depth=5,
                    nodes=None,
                    time_ms=None,
                    should_cancel=lambda: False,
                )

    def test_start_failure_raises_engine_unavailable(self) -> None:
        runner = StockfishEngineRunner(Path("stockfish"), cancel_poll_ms=10, timeout_ms=100)
        with (
            patch("chessdb.engine_runner.shutil.which", return_value="/usr/bin/stockfish"),
            patch(
                "chessdb.engine_runner.chess.engine.SimpleEngine.popen_uci",
                side_effect=OSError("exec format error"),
            ),
        ):
            with self.assertRaises(EngineUnavailableError):
                runner.analyse(
                    chess.STARTING_FEN,
                    depth=5,
                    nodes=None,
                    time_ms=None,
                    should_cancel=lambda: False,
                )


if __name__ == "__main__":
    unittest.main()
