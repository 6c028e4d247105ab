from __future__ import annotations

from enum import StrEnum

from chessdb.errors import GameNormalizationError


class GameResult(StrEnum):
    """
    Enumeration of PGN game results.

    Attributes:
        WHITE_WIN: "1-0".
        BLACK_WIN: "0-1".
        DRAW: "1/2-1/2".
        UNKNOWN: "*", an unfinished or unrecorded result.
    """

    WHITE_WIN = "1-0"
    BLACK_WIN = "0-1"
    DRAW = "1/2-1/2"
    UNKNOWN = "*"

    @classmethod
    def from_tag(cls, value: str | None) -> GameResult:
        if value is None or not value.strip():
            return cls.UNKNOWN
        resolved = _RESULT_ALIASES.get(value.strip().replace(" ", ""))
        if resolved is None:
            raise GameNormalizationError(f"Invalid game result: {value[:40]}")
        return resolved

    @property
    def white_score(self) -> float | None:
        """White's score as a performance percentage, None when undecided."""
        return _WHITE_SCORES.get(self)


_RESULT_ALIASES = {
    "1-0": GameResult.WHITE_WIN,
    "0-1": GameResult.BLACK_WIN,
    "1/2-1/2": GameResult.DRAW,
    "½-½": GameResult.DRAW,
    "1/2": GameResult.DRAW,
    "0.5-0.5": GameResult.DRAW,
    "=": GameResult.DRAW,
    "*": GameResult.UNKNOWN,
    "?": GameResult.UNKNOWN,
}

_WHITE_SCORES = {
    GameResult.WHITE_WIN: 100.0,
    GameResult.DRAW: 50.0,
    GameResult.BLACK_WIN: 0.0,
}
