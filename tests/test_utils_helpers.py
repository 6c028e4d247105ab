import pytest

from chessdb.utils.normalize_string import collapse_whitespace, normalize_string
from chessdb.utils.to_int import to_int
from chessdb.utils.truncate import MAX_ERROR_MESSAGE_LENGTH, truncate_message


@pytest.mark.parametrize(
    ("value", "expected"),
    [("  Magnus   Carlsen ", "magnus carlsen"), ("ALICE\tB.", "alice b."), (None, ""), ("", "")],
)
def test_normalize_string(value, expected) -> None:
    assert normalize_string(value) == expected


def test_collapse_whitespace_keeps_case() -> None:
    assert collapse_whitespace(" Titled \n Tuesday ") == "Titled Tuesday"


@pytest.mark.parametrize(
    ("value", "expected"),
    [(5, 5), (" 42 ", 42), ("4.5", None), ("", None), (True, None), (None, None), (3.0, None)],
)
def test_to_int(value, expected) -> None:
    assert to_int(value) == expected


def test_truncate_message_caps_length() -> None:
    assert len(truncate_message("x" * 5000)) == MAX_ERROR_MESSAGE_LENGTH
    assert truncate_message("short", limit=3) == "sho"


def test_truncate_message_names_blank_exceptions() -> None:
    assert truncate_message(TimeoutError()) == "TimeoutError"
    assert truncate_message(ValueError("bad move")) == "bad move"
