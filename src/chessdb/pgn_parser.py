"""Parse one game's PGN text with python-chess.

Moves are replayed while reading, so an illegal or unparseable SAN move makes
the whole game a parse failure.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from io import StringIO

import chess
import chess.pgn

from chessdb.errors import PgnParseError


class _TaggedGame(chess.pgn.Game):
    """A game whose headers hold only the tags present in the source text."""

    def __init__(self, headers=None) -> None:
        super().__init__(headers if headers is not None else {})


_GameBuilder = functools.partial(chess.pgn.GameBuilder, Game=_TaggedGame)


@dataclass(slots=True)
class MoveNode:
    """A move in the structured move tree."""

    san: str
    nags: list[int] = field(default_factory=list)
    comments: list[str] = field(default_factory=list)
    variations: list[list[MoveNode]] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"san": self.san}
        if self.nags:
            payload["nags"] = list(self.nags)
        if self.comments:
            payload["comments"] = list(self.comments)
        if self.variations:
            payload["variations"] = [[node.to_dict() for node in line] for line in self.variations]
        return payload


@dataclass(slots=True)
class ParsedPgn:
    """Tags, mainline SAN and the move tree of one game."""

    tags: dict[str, str]
    moves: list[str]
    move_tree: list[MoveNode]
    canonical_movetext: str
    pre_game_comments: list[str] = field(default_factory=list)

    def move_tree_dict(self) -> dict[str, object]:
        return {
            "mainline": list(self.moves),
            "comments": list(self.pre_game_comments),
            "moves": [node.to_dict() for node in self.move_tree],
        }


def read_pgn_game(pgn_text: str) -> chess.pgn.Game:
    """Read the first game in ``pgn_text``.

    A missing ``Result`` tag is filled from the movetext termination marker.

    Raises
    ------
    PgnParseError
        When the text holds no game, or python-chess reported an error
        (an illegal move, an unusable FEN tag) while reading it.
    """
    game = chess.pgn.read_game(StringIO(pgn_text), Visitor=_GameBuilder)
    if game is None:
        raise PgnParseError("PGN text contains no game")
    if game.errors:
        raise PgnParseError(f"Unreadable PGN: {game.errors[0]}")
    if not game.headers and game.next() is None:
        raise PgnParseError("PGN text contains neither tags nor moves")
    return game


def _comments(text: str) -> list[str]:
    return [line.strip() for line in text.split("\n") if line.strip()]


def _build_line(first: chess.pgn.ChildNode, board: chess.Board) -> list[MoveNode]:
    """Walk a line from ``first``; ``board`` holds the position before it and is left as found."""
    line: list[MoveNode] = []
    node: chess.pgn.ChildNode | None = first
    played = 0
    while node is not None:
        siblings = node.parent.variations
        # alternatives hang off the move they replace
        alternatives = siblings[1:] if siblings[0] is node else []
        line.append(
            MoveNode(
                san=board.san(node.move),
                nags=sorted(node.nags),
                comments=_comments(node.comment),
                variations=[_build_line(alternative, board) for alternative in alternatives],
            )
        )
        board.push(node.move)
        played += 1
        node = node.next()
    for _ in range(played):
        board.pop()
    return line


def export_movetext(game: chess.pgn.Game) -> str:
    """Movetext with comments, glyphs and variations on a single line."""
    exporter = chess.pgn.StringExporter(headers=False, variations=True, comments=True, columns=None)
    return " ".join(game.accept(exporter).split())


def parse_pgn(pgn_text: str) -> ParsedPgn:
    """Parse one game's PGN text into tags, mainline SAN and a move tree."""
    game = read_pgn_game(pgn_text)
    first = game.next()
    tree = _build_line(first, game.board()) if first is not None else []
    return ParsedPgn(
        tags=dict(game.headers),
        moves=[node.san for node in tree],
        move_tree=tree,
        canonical_movetext=export_movetext(game),
        pre_game_comments=_comments(game.comment),
    )
