from __future__ import annotations

from datetime import date
from typing import Iterator

from dateutil.relativedelta import relativedelta

from calendula.models import DateKey, Event, RecurrenceRule


def _offset(rule: RecurrenceRule, periods: int) -> relativedelta:
    count = periods * rule.interval
    if rule.frequency == "daily":
        return relativedelta(days=count)
    if rule.frequency == "weekly":
        return relativedelta(weeks=count)
    if rule.frequency == "monthly":
        return relativedelta(months=count)
    if rule.frequency == "yearly":
        return relativedelta(years=count)
    raise ValueError(f"unsupported recurrence frequency: {rule.frequency!r}")


def _first_period(anchor: date, rule: RecurrenceRule, window_start: date) -> int:
    """Smallest period index that can still land inside the window, never past it."""

    if window_start <= anchor:
        return 0
    if rule.frequency == "daily":
        return (window_start - anchor).days // rule.interval
    if rule.frequency == "weekly":
        return (window_start - anchor).days // (7 * rule.interval)
    if rule.frequency == "monthly":
        months = (window_start.year - anchor.year) * 12 + window_start.month - anchor.month
        return max(0, months - 1) // rule.interval
    years = window_start.year - anchor.year
    return max(0, years - 1) // rule.interval


class Occurrences:
    """Occurrence dates of one event inside a window.

    Iterating computes the dates lazily; every iteration starts over, so the
    same object can be walked more than once.
    """

    def __init__(self, event: Event, window_start: DateKey, window_end: DateKey) -> None:
        rule = event.recurrence
        if rule is not None and rule.interval < 1:
            raise ValueError(f"recurrence interval must be >= 1, got {rule.interval}")
        if rule is not None and not rule.is_valid:
            raise ValueError(f"unsupported recurrence frequency: {rule.frequency!r}")
        self.event = event
        self.window_start = window_start
        self.window_end = window_end

    def __iter__(self) -> Iterator[DateKey]:
        anchor = self.event.date
        start = self.window_start
        end = self.window_end
        if start > end:
            return
        rule = self.event.recurrence
        if rule is None:
            if start <= anchor <= end:
                yield anchor
            return

        anchor_date = anchor.to_date()
        start_date = start.to_date()
        end_date = end.to_date()
        until = rule.end_date.to_date() if rule.end_date else None
        period = _first_period(anchor_date, rule, start_date)
        while True:
            candidate = anchor_date + _offset(rule, period)
            if candidate > end_date:
                return
            # The anchor itself is always an occurrence; the end date bounds the repeats.
            if period > 0 and until is not None and candidate > until:
                return
            if candidate >= start_date:
                yield DateKey.from_date(candidate)
            period += 1

    def __repr__(self) -> str:
        return f"Occurrences(event={self.event.id!r}, window={self.window_start}..{self.window_end})"


def expand(event: Event, window_start: DateKey, window_end: DateKey) -> Occurrences:
    return Occurrences(event, window_start, window_end)
