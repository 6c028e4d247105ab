"""Weighted running averages shared by incremental and bulk aggregation."""

from __future__ import annotations

from collections.abc import Iterable

AVERAGE_PRECISION = 2


def running_average(
    old_avg: float | None,
    old_count: int,
    new_value: float | None,
) -> float | None:
    """
    Fold one observation into an average over ``old_count`` prior observations.

    ``new_avg = (old_avg * old_count + new_value) / (old_count + 1)``, rounded
    to two decimals. A missing new value keeps the old average; a missing old
    average takes the new value as-is.

    Examples
    --------
    >>> running_average(50.0, 1, 100.0)
    75.0
    >>> running_average(None, 3, 1800.0)
    1800.0
    >>> running_average(62.5, 2, None)
    62.5
    """
    if new_value is None:
        return old_avg
    if old_avg is None:
        return round(float(new_value), AVERAGE_PRECISION)
    total = float(old_avg) * old_count + float(new_value)
    return round(total / (old_count + 1), AVERAGE_PRECISION)


def fold_average(values: Iterable[float | None]) -> float | None:
    """Apply :func:`running_average` over values in observation order."""
    average: float | None = None
    for count, value in enumerate(values):
        average = running_average(average, count, value)
    return average
