from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from calendula.event_index import EventIndex
from calendula.grid import WEEKDAY_NAMES, build_month_grid, displayable_month, grid_window, month_title, shift_month
from calendula.models import DateKey, DayCell, Event, Occurrence
from calendula.share_link import ShareLinkCodec
from calendula.sync_controller import SyncController


@dataclass(frozen=True)
class CellView:
    cell: DayCell
    occurrences: tuple[Occurrence, ...]
    is_today: bool
    max_visible: int = 3

    @property
    def visible(self) -> tuple[Occurrence, ...]:
        return self.occurrences[: self.max_visible]

    @property
    def overflow(self) -> int:
        return max(0, len(self.occurrences) - self.max_visible)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.cell.date.format(),
            "day": self.cell.date.day,
            "in_current_month": self.cell.in_current_month,
            "is_today": self.is_today,
            "events": [occurrence.event.to_dict() for occurrence in self.visible],
            "more": self.overflow,
        }


class CalendarView:
    """The displayed month, its grid, and the events indexed onto it.

    The index is rebuilt from the controller's collection whenever the
    collection changes or the displayed month moves.
    """

    def __init__(
        self,
        controller: SyncController,
        codec: ShareLinkCodec,
        *,
        today: DateKey | None = None,
        max_events_per_cell: int = 3,
    ) -> None:
        self.controller = controller
        self.codec = codec
        self.today = today or DateKey.today()
        self.max_events_per_cell = max_events_per_cell
        self.year = self.today.year
        self.month = self.today.month
        self.index = EventIndex()
        self._reindex()
        controller.add_listener(self._on_events_changed)

    @property
    def title(self) -> str:
        return month_title(self.year, self.month)

    @property
    def weekdays(self) -> tuple[str, ...]:
        return WEEKDAY_NAMES

    @property
    def window(self) -> tuple[DateKey, DateKey]:
        return grid_window(self.year, self.month)

    def _on_events_changed(self, events: tuple[Event, ...]) -> None:
        window_start, window_end = self.window
        self.index.rebuild(events, window_start, window_end)

    def _reindex(self) -> None:
        self._on_events_changed(self.controller.events)

    def go_to(self, year: int, month: int) -> None:
        self.year, self.month = displayable_month(year, month)
        self._reindex()

    def navigate(self, delta: int) -> None:
        self.go_to(*shift_month(self.year, self.month, delta))

    def go_to_today(self) -> None:
        self.go_to(self.today.year, self.today.month)

    def cells(self) -> list[CellView]:
        return [
            CellView(
                cell=cell,
                occurrences=self.index.lookup(cell.date),
                is_today=cell.date == self.today,
                max_visible=self.max_events_per_cell,
            )
            for cell in build_month_grid(self.year, self.month)
        ]

    def weeks(self) -> list[list[CellView]]:
        cells = self.cells()
        return [cells[start : start + 7] for start in range(0, len(cells), 7)]

    def events_on(self, date: DateKey) -> tuple[Occurrence, ...]:
        return self.index.lookup(date)

    def open_shared(self, url: str) -> Event | None:
        return self.codec.decode(url, self.controller.events)

    def detach(self) -> None:
        self.controller.remove_listener(self._on_events_changed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "year": self.year,
            "month": self.month,
            "title": self.title,
            "weekdays": list(self.weekdays),
            "weeks": [[cell.to_dict() for cell in week] for week in self.weeks()],
        }
