"""De-duplication hashes for games."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from chessdb.utils.hasher import Hasher
from chessdb.utils.normalize_string import collapse_whitespace

SEVEN_TAG_ROSTER = ("Event", "Site", "Date", "Round", "White", "Black", "Result")


def build_moves_hash(san_moves: Sequence[str]) -> str:
    """Hash the ordered SAN sequence; metadata never contributes."""
    return Hasher.hash_parts(san_moves, " ")


def render_canonical_pgn(tags: Mapping[str, str], movetext: str) -> str:
    """Render tags and movetext in a fixed layout so cosmetic variants compare equal.

    Roster tags come first in roster order, the rest sorted by name. Values and
    the exported movetext have whitespace runs collapsed.
    """
    roster = [name for name in SEVEN_TAG_ROSTER if name in tags]
    extra = sorted(name for name in tags if name not in SEVEN_TAG_ROSTER)
    tag_lines = [f'[{name} "{collapse_whitespace(tags[name])}"]' for name in roster + extra]
    return "\n".join(tag_lines) + "\n\n" + collapse_whitespace(movetext)


def build_canonical_hash(tags: Mapping[str, str], movetext: str) -> str:
    return Hasher.hash_string(render_canonical_pgn(tags, movetext))
