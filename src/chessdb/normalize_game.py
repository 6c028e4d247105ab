"""Normalize parsed games into the columns stored per game."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field

from chessdb.errors import GameNormalizationError, InvalidFenError
from chessdb.fen import board_from_fen
from chessdb.game_hashes import build_canonical_hash, build_moves_hash
from chessdb.game_result import GameResult
from chessdb.pgn_date import parse_pgn_date
from chessdb.pgn_parser import ParsedPgn
from chessdb.utils.normalize_string import collapse_whitespace, normalize_string
from chessdb.utils.to_int import to_int

UNKNOWN_WHITE = "Unknown White"
UNKNOWN_BLACK = "Unknown Black"
_UNKNOWN_NUMERIC = frozenset({"", "?", "-", "*"})
_TRUE_VALUES = frozenset({"true", "yes", "1"})
_FALSE_VALUES = frozenset({"false", "no", "0"})


@dataclass(slots=True)
class NormalizedGame:  # pylint: disable=too-many-instance-attributes
    """Canonical fields of one game ready for insertion."""

    white: str
    white_norm: str
    black: str
    black_norm: str
    result: GameResult
    event: str | None
    event_norm: str | None
    site: str | None
    eco: str | None
    time_control: str | None
    rated: bool | None
    played_on: datetime.date | None
    played_year: int | None
    white_elo: int | None
    black_elo: int | None
    ply_count: int | None
    starting_fen: str | None
    source: str | None
    license: str | None
    moves_hash: str
    canonical_hash: str
    mainline_san: list[str] = field(default_factory=list)
    move_tree: dict[str, object] = field(default_factory=dict)

    @property
    def avg_elo(self) -> float | None:
        if self.white_elo is None or self.black_elo is None:
            return None
        return (self.white_elo + self.black_elo) / 2


def _sanitize_tag(tags: dict[str, str], name: str) -> str | None:
    value = tags.get(name)
    if value is None:
        return None
    collapsed = collapse_whitespace(value)
    return collapsed or None


def _parse_elo(tags: dict[str, str], name: str) -> int | None:
    raw = (tags.get(name) or "").strip()
    if raw in _UNKNOWN_NUMERIC:
        return None
    value = to_int(raw)
    if value is None or value < 0:
        raise GameNormalizationError(f"Invalid {name} tag: {raw[:40]}")
    return value


def _parse_rated(value: str | None) -> bool | None:
    normalized = (value or "").strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return None


def _parse_ply_count(value: str | None, fallback: int) -> int | None:
    parsed = to_int(value) if value is not None else None
    if parsed is None or parsed < 0:
        return fallback if fallback > 0 else None
    return parsed


def _resolve_result(parsed: ParsedPgn) -> GameResult:
    # the parser fills a missing Result tag from the movetext marker
    return GameResult.from_tag(parsed.tags.get("Result"))


def _check_starting_fen(starting_fen: str | None) -> None:
    if starting_fen is None:
        return
    try:
        board_from_fen(starting_fen)
    except InvalidFenError as exc:
        raise GameNormalizationError(f"Invalid FEN tag: {starting_fen[:100]}") from exc


def normalize_game(parsed: ParsedPgn) -> NormalizedGame:
    """Derive stored columns and de-duplication hashes from a parsed game.

    Raises ``GameNormalizationError`` for tag values that cannot be read
    (a non-numeric rating, an unknown result, an unusable FEN). Move order is
    taken from the parser untouched.
    """
    tags = parsed.tags
    white = _sanitize_tag(tags, "White") or UNKNOWN_WHITE
    black = _sanitize_tag(tags, "Black") or UNKNOWN_BLACK
    event = _sanitize_tag(tags, "Event")
    starting_fen = _sanitize_tag(tags, "FEN")
    _check_starting_fen(starting_fen)
    played = parse_pgn_date(tags.get("Date"))
    return NormalizedGame(
        white=white,
        white_norm=normalize_string(white),
        black=black,
        black_norm=normalize_string(black),
        result=_resolve_result(parsed),
        event=event,
        event_norm=normalize_string(event) if event else None,
        site=_sanitize_tag(tags, "Site"),
        eco=_sanitize_tag(tags, "ECO"),
        time_control=_sanitize_tag(tags, "TimeControl"),
        rated=_parse_rated(tags.get("Rated")),
        played_on=played.as_date(),
        played_year=played.year,
        white_elo=_parse_elo(tags, "WhiteElo"),
        black_elo=_parse_elo(tags, "BlackElo"),
        ply_count=_parse_ply_count(tags.get("PlyCount"), len(parsed.moves)),
        starting_fen=starting_fen,
        source=_sanitize_tag(tags, "Source"),
        license=_sanitize_tag(tags, "License"),
        moves_hash=build_moves_hash(parsed.moves),
        canonical_hash=build_canonical_hash(tags, parsed.canonical_movetext),
        mainline_san=list(parsed.moves),
        move_tree=parsed.move_tree_dict(),
    )
