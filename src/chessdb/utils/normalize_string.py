from __future__ import annotations

import re

_WHITESPACE_RE = re.compile(r"\s+")


def collapse_whitespace(value: str | None) -> str:
    """Strip the value and collapse internal whitespace runs to one space."""
    return _WHITESPACE_RE.sub(" ", (value or "").strip())


def normalize_string(value: str | None) -> str:
    """
    Normalize a string for case-insensitive search.

    Parameters
    ----------
    value : str or None
        The input string to normalize. If None, an empty string is used.

    Returns
    -------
    str
        The value stripped, with whitespace runs collapsed and lower-cased.

    Examples
    --------
    >>> normalize_string("  Magnus   Carlsen ")
    'magnus carlsen'
    >>> normalize_string(None)
    ''
    """
    return collapse_whitespace(value).lower()
