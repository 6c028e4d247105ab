"""UCI engine invocation with cooperative cancellation."""

from __future__ import annotations

import shutil
import threading
import time
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import chess
import chess.engine

from chessdb.errors import EngineUnavailableError
from chessdb.fen import board_from_fen
from chessdb.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class EngineAnalysis:
    best_move: str | None
    pv: list[str] = field(default_factory=list)
    eval_cp: int | None = None
    eval_mate: int | None = None
    depth: int | None = None
    nodes: int | None = None
    cancelled: bool = False

    @classmethod
    def from_info(cls, info: chess.engine.InfoDict, board: chess.Board) -> EngineAnalysis:
        pv = [move.uci() for move in info.get("pv") or []]
        eval_cp: int | None = None
        eval_mate: int | None = None
        score = info.get("score")
        if score is not None:
            pov = score.pov(board.turn)
            eval_mate = pov.mate()
            eval_cp = pov.score() if eval_mate is None else None
        depth = info.get("depth")
        nodes = info.get("nodes")
        return cls(
            best_move=pv[0] if pv else None,
            pv=pv,
            eval_cp=eval_cp,
            eval_mate=eval_mate,
            depth=int(depth) if depth is not None else None,
            nodes=int(nodes) if nodes is not None else None,
        )


class EngineRunner(Protocol):
    def analyse(  # pylint: disable=too-many-arguments
        self,
        fen: str,
        *,
        depth: int | None,
        nodes: int | None,
        time_ms: int | None,
        should_cancel: Callable[[], bool],
    ) -> EngineAnalysis:
        """Search ``fen`` until a limit is hit or ``should_cancel`` turns true."""


def build_limit(depth: int | None, nodes: int | None, time_ms: int | None) -> chess.engine.Limit:
    return chess.engine.Limit(
        depth=depth,
        nodes=nodes,
        time=time_ms / 1000 if time_ms is not None else None,
    )


class StockfishEngineRunner:
    """Start one Stockfish process per search and stop it on cancel or timeout."""

    def __init__(
        self,
        stockfish_path: Path,
        *,
        cancel_poll_ms: int,
        timeout_ms: int,
    ) -> None:
        self.stockfish_path = stockfish_path
        self.cancel_poll_ms = cancel_poll_ms
        self.timeout_ms = timeout_ms

    def _resolve_command(self) -> str:
        if self.stockfish_path.exists():
            return str(self.stockfish_path)
        resolved = shutil.which(str(self.stockfish_path)) or shutil.which("stockfish")
        if resolved:
            return resolved
        raise EngineUnavailableError(f"Stockfish binary not found: {self.stockfish_path}")

    def _start_engine(self) -> chess.engine.SimpleEngine:
        command = self._resolve_command()
        try:
            return chess.engine.SimpleEngine.popen_uci(command)
        except (OSError, chess.engine.EngineError) as exc:
            logger.warning("Stockfish failed to start: %s", exc)
            raise EngineUnavailableError(f"Stockfish failed to start: {exc}") from exc

    def analyse(  # pylint: disable=too-many-arguments
        self,
        fen: str,
        *,
        depth: int | None,
        nodes: int | None,
        time_ms: int | None,
        should_cancel: Callable[[], bool],
    ) -> EngineAnalysis:
        """Run a search, polling ``should_cancel`` every ``cancel_poll_ms``.

        Raises ``TimeoutError`` when the search outlives ``timeout_ms``.
        """
        board = board_from_fen(fen)
        engine = self._start_engine()
        stopped = threading.Event()
        state = {"cancelled": False, "timed_out": False}
        try:
            with engine.analysis(board, build_limit(depth, nodes, time_ms)) as analysis:

                def watch() -> None:
                    deadline = time.monotonic() + self.timeout_ms / 1000
                    while not stopped.wait(self.cancel_poll_ms / 1000):
                        if should_cancel():
                            state["cancelled"] = True
                        elif time.monotonic() >= deadline:
                            state["timed_out"] = True
                        else:
                            continue
                        analysis.stop()
                        return

                watcher = threading.Thread(target=watch, name="engine-cancel-watch", daemon=True)
                watcher.start()
                try:
                    analysis.wait()
                finally:
                    stopped.set()
                    watcher.join()
                info = analysis.info
        finally:
            with suppress(chess.engine.EngineError):
                engine.quit()
        if state["timed_out"]:
            raise TimeoutError(f"Engine analysis exceeded {self.timeout_ms} ms")
        result = EngineAnalysis.from_info(info, board)
        result.cancelled = state["cancelled"]
        return result
