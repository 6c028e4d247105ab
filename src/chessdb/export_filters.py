"""Export selection filters and their SQL predicate."""

from __future__ import annotations

import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from chessdb.utils.normalize_string import normalize_string


class ExportFilter(BaseModel):
    """Structured game filter; every field is optional and absent fields match all."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    player: str | None = None
    eco: str | None = Field(default=None, max_length=3)
    opening_prefix: str | None = Field(default=None, max_length=3)
    result: Literal["1-0", "0-1", "1/2-1/2", "*"] | None = None
    time_control: str | None = None
    event: str | None = None
    site: str | None = None
    rated: bool | None = None
    from_date: datetime.date | None = None
    to_date: datetime.date | None = None
    white_elo_min: int | None = Field(default=None, ge=0)
    white_elo_max: int | None = Field(default=None, ge=0)
    black_elo_min: int | None = Field(default=None, ge=0)
    black_elo_max: int | None = Field(default=None, ge=0)
    avg_elo_min: int | None = Field(default=None, ge=0)
    avg_elo_max: int | None = Field(default=None, ge=0)
    collection_id: int | None = Field(default=None, gt=0)
    tag_id: int | None = Field(default=None, gt=0)

    @field_validator(
        "player", "eco", "opening_prefix", "time_control", "event", "site", "result", mode="before"
    )
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _check_ranges(self) -> ExportFilter:
        pairs = (
            ("from_date", "to_date"),
            ("white_elo_min", "white_elo_max"),
            ("black_elo_min", "black_elo_max"),
            ("avg_elo_min", "avg_elo_max"),
        )
        for low_name, high_name in pairs:
            low, high = getattr(self, low_name), getattr(self, high_name)
            if low is not None and high is not None and low > high:
                raise ValueError(f"{low_name} must not exceed {high_name}")
        return self


def build_export_predicate(user_id: int, query: ExportFilter) -> tuple[str, list[object]]:
    """Return a WHERE clause over ``games g`` and its parameters.

    The user condition is always present; each set filter field adds exactly
    one AND-ed condition.
    """
    clauses = ["g.user_id = ?"]
    params: list[object] = [user_id]

    def add(clause: str, *values: object) -> None:
        clauses.append(clause)
        params.extend(values)

    if query.player:
        pattern = f"%{normalize_string(query.player)}%"
        add("(g.white_norm LIKE ? OR g.black_norm LIKE ?)", pattern, pattern)
    if query.eco:
        add("g.eco = ?", query.eco.upper())
    if query.opening_prefix:
        add("g.eco ILIKE ?", f"{query.opening_prefix}%")
    if query.result:
        add("g.result = ?", query.result)
    if query.time_control:
        add("g.time_control = ?", query.time_control)
    if query.event:
        add("g.event_norm LIKE ?", f"%{normalize_string(query.event)}%")
    if query.site:
        add("g.site ILIKE ?", f"%{query.site}%")
    if query.rated is not None:
        add("g.rated = ?", query.rated)
    if query.from_date is not None:
        add("g.played_on >= ?", query.from_date)
    if query.to_date is not None:
        add("g.played_on <= ?", query.to_date)
    if query.white_elo_min is not None:
        add("g.white_elo >= ?", query.white_elo_min)
    if query.white_elo_max is not None:
        add("g.white_elo <= ?", query.white_elo_max)
    if query.black_elo_min is not None:
        add("g.black_elo >= ?", query.black_elo_min)
    if query.black_elo_max is not None:
        add("g.black_elo <= ?", query.black_elo_max)
    if query.avg_elo_min is not None:
        add("((g.white_elo + g.black_elo) / 2.0) >= ?", query.avg_elo_min)
    if query.avg_elo_max is not None:
        add("((g.white_elo + g.black_elo) / 2.0) <= ?", query.avg_elo_max)
    if query.collection_id is not None:
        add(
            """EXISTS (
                SELECT 1 FROM collection_games cg
                WHERE cg.user_id = g.user_id AND cg.collection_id = ? AND cg.game_id = g.id
            )""",
            query.collection_id,
        )
    if query.tag_id is not None:
        add(
            """EXISTS (
                SELECT 1 FROM game_tags gt
                WHERE gt.user_id = g.user_id AND gt.tag_id = ? AND gt.game_id = g.id
            )""",
            query.tag_id,
        )
    return " AND ".join(clauses), params
