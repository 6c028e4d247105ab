"""Render stored user annotations into PGN comment and glyph syntax."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field

import chess.pgn

from chessdb.pgn_parser import read_pgn_game

ANNOTATION_PAYLOAD_MARKER = "chessdb-annotations"
DEFAULT_ANNOTATION_SCHEMA = 2
MAX_NAGS_PER_MOVE = 32
MAX_MARKS_PER_MOVE = 64

_SQUARE_RE = re.compile(r"^[a-h][1-8]$")
_ARROW_RE = re.compile(r"^[a-h][1-8][a-h][1-8]$")


@dataclass(slots=True)
class MoveNote:
    nags: list[int] = field(default_factory=list)
    comment: str | None = None
    highlights: list[str] = field(default_factory=list)
    arrows: list[str] = field(default_factory=list)
    variation_note: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.nags or self.comment or self.highlights or self.arrows or self.variation_note)


def _clean_text(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    # "}" would close the brace comment early
    text = " ".join(value.replace("}", ")").split())
    return text or None


def _clean_marks(values: object, pattern: re.Pattern[str]) -> list[str]:
    if not isinstance(values, list):
        return []
    marks = [value.strip().lower() for value in values if isinstance(value, str)]
    return [mark for mark in marks if pattern.match(mark)][:MAX_MARKS_PER_MOVE]


def _clean_nags(values: object) -> list[int]:
    if not isinstance(values, list):
        return []
    nags = [
        value
        for value in values
        if isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 255
    ]
    return nags[:MAX_NAGS_PER_MOVE]


def normalize_move_notes(move_notes: Mapping[str, object] | None) -> dict[int, MoveNote]:
    """Keep well-formed notes keyed by mainline ply; drop anything unusable."""
    notes: dict[int, MoveNote] = {}
    for key, raw in (move_notes or {}).items():
        if not str(key).isdigit() or not isinstance(raw, Mapping):
            continue
        note = MoveNote(
            nags=_clean_nags(raw.get("nags", raw.get("glyphs"))),
            comment=_clean_text(raw.get("comment")),
            highlights=_clean_marks(raw.get("highlights"), _SQUARE_RE),
            arrows=_clean_marks(raw.get("arrows"), _ARROW_RE),
            variation_note=_clean_text(raw.get("variationNote")),
        )
        if not note.is_empty:
            notes[int(key)] = note
    return notes


def _mark_parts(highlights: list[str], arrows: list[str]) -> list[str]:
    parts = []
    if highlights:
        parts.append("[%csl " + ",".join(f"Y{square}" for square in highlights) + "]")
    if arrows:
        parts.append("[%cal " + ",".join(f"G{arrow}" for arrow in arrows) + "]")
    return parts


def root_annotation_parts(annotations: Mapping[str, object] | None) -> list[str]:
    """Game comment, square highlights, then arrows."""
    if not annotations:
        return []
    parts = []
    comment = _clean_text(annotations.get("comment"))
    if comment:
        parts.append(comment)
    parts.extend(
        _mark_parts(
            _clean_marks(annotations.get("highlights"), _SQUARE_RE),
            _clean_marks(annotations.get("arrows"), _ARROW_RE),
        )
    )
    return parts


def move_note_parts(note: MoveNote, ply: int) -> list[str]:
    """Comment text for one move: the note, its marks, then any variation note.

    Glyphs are not included; they are added to the move's NAGs.
    """
    parts = []
    if note.comment:
        parts.append(note.comment)
    parts.extend(_mark_parts(note.highlights, note.arrows))
    if note.variation_note:
        parts.append(f"Variation note (ply {ply}): {note.variation_note}")
    return parts


def annotation_payload_comment(
    annotations: Mapping[str, object] | None,
    move_notes: Mapping[str, object] | None,
    schema_version: int | None,
) -> str:
    """A rest-of-line comment carrying the stored payload as JSON.

    A ``;`` comment ends only at the newline, so JSON braces need no escaping
    and the payload round-trips exactly.
    """
    payload = {
        "schema": schema_version or DEFAULT_ANNOTATION_SCHEMA,
        "annotations": annotations or {},
        "move_notes": move_notes or {},
    }
    return f"; {ANNOTATION_PAYLOAD_MARKER} {json.dumps(payload, sort_keys=True)}"


def extract_annotation_payload(pgn_text: str) -> dict[str, object] | None:
    """Read back the payload written by :func:`annotation_payload_comment`."""
    prefix = f"; {ANNOTATION_PAYLOAD_MARKER} "
    for line in pgn_text.splitlines():
        if line.startswith(prefix):
            return json.loads(line[len(prefix) :])
    return None


def _merge_comment(existing: str, parts: list[str]) -> str:
    return " ".join(part for part in [existing.strip(), *parts] if part)


class _AnnotatedExporter(chess.pgn.StringExporter):
    """Exports tags and movetext; the termination marker is kept aside."""

    termination: str | None = None

    def visit_result(self, result: str) -> None:
        self.termination = result


def render_annotated_pgn(
    pgn_text: str,
    annotations: Mapping[str, object] | None,
    move_notes: Mapping[str, object] | None,
    schema_version: int | None = None,
) -> str:
    """
    Merge annotations into a game's PGN text.

    Root text precedes the first move; each mainline move gets the glyphs and
    comment stored for its ply (1-based). The full payload goes in a trailing
    structured comment just before the result token. Games without any
    annotations come back trimmed but otherwise unchanged.
    """
    trimmed = pgn_text.strip()
    if not annotations and not move_notes:
        return trimmed
    game = read_pgn_game(trimmed)
    game.comment = _merge_comment(game.comment, root_annotation_parts(annotations))
    notes = normalize_move_notes(move_notes)
    for ply, node in enumerate(game.mainline(), start=1):
        note = notes.get(ply)
        if note is None:
            continue
        node.nags.update(note.nags)
        node.comment = _merge_comment(node.comment, move_note_parts(note, ply))
    exporter = _AnnotatedExporter(headers=True, variations=True, comments=True, columns=None)
    body = [
        game.accept(exporter).strip(),
        annotation_payload_comment(annotations, move_notes, schema_version),
        exporter.termination,
    ]
    return "\n".join(part for part in body if part)
