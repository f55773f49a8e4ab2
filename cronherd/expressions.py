"""Cron expression validation and next-run computation.

Expressions are handed to APScheduler's :class:`CronTrigger`, which does the
per-field parsing.  Two crontab conventions differ from APScheduler's own and
are translated here before the trigger is built:

* five-field expressions have no seconds column, so ``second`` is pinned to
  ``0``; six-field expressions carry the seconds column first;
* day-of-week numbers follow crontab (``0`` and ``7`` are Sunday) while
  APScheduler counts from Monday, so the field is rewritten to day names.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone as dt_timezone, tzinfo
from typing import Iterator
from zoneinfo import ZoneInfo

from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

_DAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")
_EPSILON = timedelta(microseconds=1)


def resolve_timezone(timezone: str | tzinfo) -> tzinfo:
    """Return a ``tzinfo`` for ``timezone`` (an IANA name or a tzinfo)."""

    if isinstance(timezone, tzinfo):
        return timezone
    if not isinstance(timezone, str) or not timezone.strip():
        raise ValueError(f"Invalid timezone: {timezone!r}")
    return ZoneInfo(timezone.strip())


def _day_value(token: str) -> int:
    token = token.strip().lower()
    if token in _DAY_NAMES:
        return _DAY_NAMES.index(token)
    if token.isdigit() and 0 <= int(token) <= 7:
        return int(token)
    raise ValueError(f"Invalid day of week: {token!r}")


def _normalize_day_of_week(field: str) -> str:
    """Rewrite a crontab day-of-week field into APScheduler day names."""

    if field in ("*", "?"):
        return "*"
    days: set[int] = set()
    for part in field.split(","):
        base, _, step_text = part.partition("/")
        step = 1
        if step_text:
            if not step_text.isdigit() or int(step_text) == 0:
                raise ValueError(f"Invalid step in day of week: {part!r}")
            step = int(step_text)
        if base in ("*", "?"):
            first, last = 0, 6
        elif "-" in base:
            start, end = base.split("-", 1)
            first, last = _day_value(start), _day_value(end)
            if first > last:
                raise ValueError(f"Descending day-of-week range: {part!r}")
        else:
            first = _day_value(base)
            last = 6 if step_text else first
        days.update(value % 7 for value in range(first, last + 1, step))
    return ",".join(_DAY_NAMES[day] for day in sorted(days))


def _normalize_day_field(field: str) -> str:
    return "*" if field == "?" else field


def parse_expression(expression: str, timezone: str | tzinfo = "UTC") -> CronTrigger:
    """Build a :class:`CronTrigger` for ``expression`` evaluated in ``timezone``.

    Raises ``ValueError`` (or ``KeyError`` for unknown zones) when either
    argument is malformed.
    """

    if not isinstance(expression, str):
        raise ValueError("expression must be a string")
    fields = expression.split()
    if len(fields) == 5:
        second = "0"
        minute, hour, day, month, day_of_week = fields
    elif len(fields) == 6:
        second, minute, hour, day, month, day_of_week = fields
    else:
        raise ValueError(f"expected 5 or 6 fields, got {len(fields)}")

    return CronTrigger(
        second=second,
        minute=minute,
        hour=hour,
        day=_normalize_day_field(day),
        month=month,
        day_of_week=_normalize_day_of_week(day_of_week),
        timezone=resolve_timezone(timezone),
    )


def validate(expression: str) -> bool:
    """Return ``True`` if ``expression`` is a valid five or six field cron expression."""

    try:
        parse_expression(expression)
    except (ValueError, KeyError, TypeError):
        return False
    return True


def is_valid_timezone(timezone: str | tzinfo) -> bool:
    try:
        resolve_timezone(timezone)
    except (ValueError, KeyError):
        return False
    return True


def next_run(
    expression: str,
    timezone: str | tzinfo = "UTC",
    from_: datetime | None = None,
) -> datetime:
    """Return the first time strictly after ``from_`` matching ``expression``.

    ``from_`` defaults to the current time; naive values are taken as UTC.
    The result is expressed in ``timezone``.  If no match can be computed the
    reference time itself is returned.
    """

    if from_ is None:
        from_ = datetime.now(dt_timezone.utc)
    elif from_.tzinfo is None:
        from_ = from_.replace(tzinfo=dt_timezone.utc)

    try:
        trigger = parse_expression(expression, timezone)
        fire_time = trigger.get_next_fire_time(None, from_ + _EPSILON)
    except Exception:
        logger.warning(
            "Could not compute next run for %r in %s", expression, timezone, exc_info=True
        )
        return from_
    if fire_time is None:
        logger.warning("Expression %r never fires after %s", expression, from_)
        return from_
    return fire_time


def iter_next_runs(
    expression: str,
    timezone: str | tzinfo = "UTC",
    from_: datetime | None = None,
    count: int = 5,
) -> Iterator[datetime]:
    """Yield up to ``count`` consecutive fire times after ``from_``."""

    current = from_ or datetime.now(dt_timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=dt_timezone.utc)
    for _ in range(count):
        upcoming = next_run(expression, timezone, current)
        if upcoming <= current:
            return
        yield upcoming
        current = upcoming


__all__ = [
    "resolve_timezone",
    "parse_expression",
    "validate",
    "is_valid_timezone",
    "next_run",
    "iter_next_runs",
]
