import pytest

from chessdb.errors import PgnParseError
from chessdb.pgn_annotations import (
    extract_annotation_payload,
    normalize_move_notes,
    render_annotated_pgn,
)

PGN = '[Event "x"]\n[Result "*"]\n\n1. e4 e5 2. Nf3 {line note}\n*\n'


def test_render_places_annotations_in_order():
    annotations = {"comment": "Great {game}", "highlights": ["E4"], "arrows": ["e2e4"]}
    move_notes = {"1": {"nags": [1], "comment": "Best by test"}, "3": {"variationNote": "Also 2. Bc4"}}

    rendered = render_annotated_pgn(PGN, annotations, move_notes)

    tags, movetext = rendered.split("\n\n", 1)
    assert tags == '[Event "x"]\n[Result "*"]'
    lines = movetext.split("\n")
    assert lines[0] == (
        "{ Great {game) [%csl Ye4] [%cal Ge2e4] } 1. e4 $1 { Best by test } 1... e5 2. Nf3 "
        "{ line note Variation note (ply 3): Also 2. Bc4 }"
    )
    assert lines[1].startswith("; chessdb-annotations ")
    assert lines[2] == "*"


def test_payload_round_trips_unchanged():
    annotations = {"comment": "Great {game}", "highlights": ["E4"]}
    move_notes = {"2": {"glyphs": [2], "comment": "}{"}}

    rendered = render_annotated_pgn(PGN, annotations, move_notes, schema_version=3)

    assert extract_annotation_payload(rendered) == {
        "schema": 3,
        "annotations": annotations,
        "move_notes": move_notes,
    }


def test_plain_games_are_returned_trimmed():
    assert render_annotated_pgn(PGN, None, None) == PGN.strip()
    assert render_annotated_pgn(PGN, {}, {}) == PGN.strip()
    assert extract_annotation_payload(PGN) is None


def test_variation_moves_do_not_advance_the_ply():
    pgn = "1. e4 (1. d4 d5) 1... e5 2. Nf3 *"

    rendered = render_annotated_pgn(pgn, None, {"2": {"comment": "solid"}})

    assert rendered.startswith('[Result "*"]\n\n1. e4 ( 1. d4 d5 ) 1... e5 { solid } 2. Nf3\n')


def test_move_notes_are_sanitized():
    notes = normalize_move_notes(
        {
            "1": {"nags": [0, 1, 300, True, "2", 14], "highlights": ["e4", "z9", " D5 "], "arrows": ["e2e4", "e2"]},
            "x": {"comment": "dropped"},
            "2": {"comment": "   "},
            "3": "not a mapping",
        }
    )

    assert list(notes) == [1]
    assert notes[1].nags == [1, 14]
    assert notes[1].highlights == ["e4", "d5"]
    assert notes[1].arrows == ["e2e4"]


def test_glyphs_merge_with_those_already_in_the_game():
    rendered = render_annotated_pgn("1. e4 $1 e5 *", None, {"1": {"nags": [1, 3]}})

    assert "1. e4 $1 $3 " in rendered
    assert rendered.count("$1") == 1


def test_unreadable_stored_pgn_raises():
    with pytest.raises(PgnParseError):
        render_annotated_pgn("1. e4 e4 *", {"comment": "x"}, None)
