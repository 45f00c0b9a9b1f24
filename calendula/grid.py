from __future__ import annotations

import calendar

from calendula.errors import ValidationError
from calendula.models import DateKey, DayCell


MONTH_NAMES = tuple(calendar.month_name[1:])
WEEKDAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")

# Sunday-first weeks.
_SUNDAY_FIRST = calendar.Calendar(firstweekday=calendar.SUNDAY)

# The padded grids of January 1 and December 9999 spill outside the date range.
FIRST_DISPLAYABLE_MONTH = (1, 2)
LAST_DISPLAYABLE_MONTH = (9999, 11)


def normalize_month(year: int, month: int) -> tuple[int, int]:
    """Fold month overflow into the year: (2024, 13) -> (2025, 1), (2024, 0) -> (2023, 12)."""

    offset_year, month_index = divmod(month - 1, 12)
    return year + offset_year, month_index + 1


def displayable_month(year: int, month: int) -> tuple[int, int]:
    """Normalize ``(year, month)`` and reject months whose grid cannot be built."""

    normalized = normalize_month(year, month)
    if not FIRST_DISPLAYABLE_MONTH <= normalized <= LAST_DISPLAYABLE_MONTH:
        first_year, first_month = FIRST_DISPLAYABLE_MONTH
        last_year, last_month = LAST_DISPLAYABLE_MONTH
        raise ValidationError(
            f"month {normalized[0]}-{normalized[1]:02d} is outside "
            f"{first_year:04d}-{first_month:02d}..{last_year:04d}-{last_month:02d}"
        )
    return normalized


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    return normalize_month(year, month + delta)


def build_month_grid(year: int, month: int) -> list[DayCell]:
    year, month = displayable_month(year, month)
    cells: list[DayCell] = []
    for week in _SUNDAY_FIRST.monthdatescalendar(year, month):
        for day in week:
            cells.append(DayCell(date=DateKey.from_date(day), in_current_month=day.month == month))
    return cells


def month_window(year: int, month: int) -> tuple[DateKey, DateKey]:
    year, month = normalize_month(year, month)
    last_day = calendar.monthrange(year, month)[1]
    return DateKey(year, month, 1), DateKey(year, month, last_day)


def grid_window(year: int, month: int) -> tuple[DateKey, DateKey]:
    """First and last date shown by the month grid, adjacent-month cells included."""

    weeks = _SUNDAY_FIRST.monthdatescalendar(*displayable_month(year, month))
    return DateKey.from_date(weeks[0][0]), DateKey.from_date(weeks[-1][-1])


def month_title(year: int, month: int) -> str:
    year, month = normalize_month(year, month)
    return f"{MONTH_NAMES[month - 1]} {year}"
