from datetime import datetime, timedelta, timezone

import pytest

from cronherd.expressions import (
    is_valid_timezone,
    iter_next_runs,
    next_run,
    parse_expression,
    validate,
)

UTC = timezone.utc


@pytest.mark.parametrize(
    "expression",
    [
        "* * * * *",
        "*/15 9-17 * * mon-fri",
        "0 0 1,15 * *",
        "30 6 * jan,jul 1-5",
        "0 0 * * 0",
        "0 0 * * 7",
        "5-10/2 * * * *",
        "0 12 ? * sun",
        "*/10 * * * * *",
        "0 30 9 * * 1",
        "  0   5 * * *  ",
    ],
)
def test_validate_accepts_cron_expressions(expression):
    assert validate(expression) is True


@pytest.mark.parametrize(
    "expression",
    [
        "",
        "   ",
        "* * * *",
        "* * * * * * *",
        "60 * * * *",
        "* 24 * * *",
        "* * 32 * *",
        "* * * 13 *",
        "* * * * 8",
        "* * * * 5-1",
        "abc * * * *",
        "*/0 * * * *",
        "5-1 * * * *",
        "1,,2 * * * *",
        None,
        123,
    ],
)
def test_validate_rejects_malformed_input(expression):
    assert validate(expression) is False


def test_parse_expression_rejects_unknown_timezone():
    with pytest.raises((KeyError, ValueError)):
        parse_expression("* * * * *", "Mars/Olympus_Mons")


def test_is_valid_timezone():
    assert is_valid_timezone("Europe/Paris")
    assert not is_valid_timezone("Mars/Olympus_Mons")
    assert not is_valid_timezone("")


def test_next_run_is_strictly_after_reference():
    start = datetime(2024, 1, 1, 0, 1, tzinfo=UTC)
    assert next_run("* * * * *", "UTC", start) == datetime(2024, 1, 1, 0, 2, tzinfo=UTC)

    mid_minute = datetime(2024, 1, 1, 0, 0, 30, tzinfo=UTC)
    assert next_run("* * * * *", "UTC", mid_minute) == datetime(2024, 1, 1, 0, 1, tzinfo=UTC)


def test_next_run_defaults_to_now():
    before = datetime.now(UTC)
    upcoming = next_run("* * * * *")
    assert upcoming > before
    assert upcoming - before <= timedelta(seconds=61)


def test_next_run_six_fields_uses_seconds():
    start = datetime(2024, 1, 1, 0, 0, 5, tzinfo=UTC)
    assert next_run("*/10 * * * * *", "UTC", start) == datetime(2024, 1, 1, 0, 0, 10, tzinfo=UTC)


@pytest.mark.parametrize("sunday", ["0", "7", "sun"])
def test_day_of_week_follows_crontab_numbering(sunday):
    # 2024-01-01 is a Monday
    start = datetime(2024, 1, 1, 12, tzinfo=UTC)
    assert next_run(f"0 9 * * {sunday}", "UTC", start) == datetime(2024, 1, 7, 9, tzinfo=UTC)


def test_weekday_range_skips_weekend():
    saturday = datetime(2024, 1, 6, 10, tzinfo=UTC)
    assert next_run("0 9 * * 1-5", "UTC", saturday) == datetime(2024, 1, 8, 9, tzinfo=UTC)


def test_day_of_week_step():
    # */2 covers Sunday, Tuesday, Thursday and Saturday
    monday = datetime(2024, 1, 1, 12, tzinfo=UTC)
    assert next_run("0 0 * * */2", "UTC", monday) == datetime(2024, 1, 2, 0, tzinfo=UTC)


def test_next_run_evaluated_in_timezone():
    start = datetime(2024, 1, 1, 0, 0, tzinfo=UTC)
    upcoming = next_run("0 9 * * *", "Europe/Paris", start)
    assert upcoming == datetime(2024, 1, 1, 8, 0, tzinfo=UTC)
    assert upcoming.utcoffset() == timedelta(hours=1)


def test_naive_reference_is_treated_as_utc():
    upcoming = next_run("30 * * * *", "UTC", datetime(2024, 1, 1, 10, 0))
    assert upcoming == datetime(2024, 1, 1, 10, 30, tzinfo=UTC)


def test_next_run_degrades_to_reference_on_failure():
    start = datetime(2024, 1, 1, tzinfo=UTC)
    assert next_run("not a cron", "UTC", start) == start
    assert next_run("* * * * *", "Mars/Olympus_Mons", start) == start


def test_iter_next_runs():
    start = datetime(2024, 1, 1, 0, 30, tzinfo=UTC)
    runs = list(iter_next_runs("0 * * * *", "UTC", start, count=3))
    assert runs == [
        datetime(2024, 1, 1, 1, tzinfo=UTC),
        datetime(2024, 1, 1, 2, tzinfo=UTC),
        datetime(2024, 1, 1, 3, tzinfo=UTC),
    ]


def test_iter_next_runs_stops_on_invalid_expression():
    assert list(iter_next_runs("bogus", "UTC", datetime(2024, 1, 1, tzinfo=UTC))) == []
