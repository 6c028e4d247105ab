"""Tolerant parsing of PGN Date tags."""

from __future__ import annotations

import datetime
import re
from dataclasses import dataclass

_DATE_RE = re.compile(r"^([0-9?]{4})[.\-/]([0-9?]{1,2})[.\-/]([0-9?]{1,2})$")
_YEAR_RE = re.compile(r"^([0-9]{4})(?:[.\-/].*)?$")


@dataclass(frozen=True, slots=True)
class PgnDate:
    """A possibly partial date; unknown components are None."""

    year: int | None = None
    month: int | None = None
    day: int | None = None

    def as_date(self) -> datetime.date | None:
        if self.year is None or self.month is None or self.day is None:
            return None
        try:
            return datetime.date(self.year, self.month, self.day)
        except ValueError:
            return None


def _component(value: str) -> int | None:
    if "?" in value:
        return None
    number = int(value)
    return number or None


def parse_pgn_date(value: str | None) -> PgnDate:
    """
    Parse a PGN ``YYYY.MM.DD`` date allowing ``?`` in any component.

    Never raises: unreadable dates come back empty, and a readable year is
    kept even when the month or day is unknown.

    Examples
    --------
    >>> parse_pgn_date("2023.??.??")
    PgnDate(year=2023, month=None, day=None)
    >>> parse_pgn_date("2023.04.31").as_date() is None
    True
    """
    text = (value or "").strip()
    match = _DATE_RE.match(text)
    if match is None:
        year_match = _YEAR_RE.match(text)
        return PgnDate(year=int(year_match.group(1))) if year_match else PgnDate()
    year, month, day = (_component(part) for part in match.groups())
    if month is not None and not 1 <= month <= 12:
        month = None
    if day is not None and not 1 <= day <= 31:
        day = None
    return PgnDate(year=year, month=month, day=day)
