import pytest

from chessdb.running_average import fold_average, running_average


@pytest.mark.parametrize(
    ("old_avg", "old_count", "new_value", "expected"),
    [
        (None, 0, 1800.0, 1800.0),
        (1800.0, 1, 2000.0, 1900.0),
        (50.0, 2, 100.0, 66.67),
        (62.5, 4, None, 62.5),
        (None, 3, 40.0, 40.0),
        (None, 0, None, None),
    ],
)
def test_running_average(old_avg, old_count, new_value, expected):
    assert running_average(old_avg, old_count, new_value) == expected


def test_fold_matches_step_by_step_updates():
    values = [100.0, None, 50.0, 0.0, 100.0]
    average = None
    for count, value in enumerate(values):
        average = running_average(average, count, value)
    assert fold_average(values) == average


def test_fold_of_nothing_is_none():
    assert fold_average([]) is None
    assert fold_average([None, None]) is None
