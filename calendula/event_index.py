from __future__ import annotations

import logging
from datetime import time
from typing import Iterable, Mapping

from calendula.models import DateKey, Event, Occurrence
from calendula.recurrence import expand

logger = logging.getLogger(__name__)


def _time_sort_key(occurrence: Occurrence) -> tuple[int, time]:
    # All-day entries first, then by time of day.
    event_time = occurrence.event.time
    if event_time is None:
        return (0, time.min)
    return (1, event_time)


class EventIndex:
    """Maps each date in a window to the events visible on it.

    The index is only ever rebuilt wholesale from the full event collection,
    so its content depends solely on the events and the window passed to the
    last ``rebuild``.
    """

    def __init__(self) -> None:
        self._buckets: dict[DateKey, tuple[Occurrence, ...]] = {}
        self._window: tuple[DateKey, DateKey] | None = None

    @property
    def window(self) -> tuple[DateKey, DateKey] | None:
        return self._window

    def rebuild(
        self,
        events: Iterable[Event],
        window_start: DateKey,
        window_end: DateKey,
    ) -> Mapping[DateKey, tuple[Occurrence, ...]]:
        collected: dict[DateKey, list[Occurrence]] = {}
        for event in events:
            try:
                occurrence_dates = list(expand(event, window_start, window_end))
            except ValueError as exc:
                logger.warning("Skipping event %r with malformed recurrence: %s", event.id, exc)
                continue
            for occurrence_date in occurrence_dates:
                collected.setdefault(occurrence_date, []).append(Occurrence(event=event, date=occurrence_date))

        self._buckets = {
            key: tuple(sorted(bucket, key=_time_sort_key)) for key, bucket in sorted(collected.items())
        }
        self._window = (window_start, window_end)
        logger.debug(
            "Rebuilt event index for %s..%s: %d occurrences on %d dates",
            window_start,
            window_end,
            len(self),
            len(self._buckets),
        )
        return dict(self._buckets)

    def lookup(self, date: DateKey) -> tuple[Occurrence, ...]:
        return self._buckets.get(date, ())

    def dates(self) -> list[DateKey]:
        return list(self._buckets)

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._buckets.values())
