import unittest
from datetime import time
from unittest import mock

from calendula.calendar_view import CalendarView
from calendula.errors import ValidationError
from calendula.models import DateKey, Event, RecurrenceRule
from calendula.share_link import ShareLinkCodec
from calendula.sync_controller import SyncController


TODAY = DateKey(2024, 3, 12)


class CalendarViewTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.client = mock.Mock()
        self.controller = SyncController(self.client)
        self.codec = ShareLinkCodec("https://calendar.example.com/")
        self.view = CalendarView(self.controller, self.codec, today=TODAY)

    async def _load(self, events: list[Event]) -> None:
        self.client.list_events.return_value = events
        result = await self.controller.list_events()
        self.assertTrue(result.ok)

    def test_starts_on_todays_month(self) -> None:
        self.assertEqual((self.view.year, self.view.month), (2024, 3))
        self.assertEqual(self.view.title, "March 2024")
        today_cells = [cell for cell in self.view.cells() if cell.is_today]
        self.assertEqual([cell.cell.date for cell in today_cells], [TODAY])

    async def test_index_follows_controller_changes(self) -> None:
        await self._load([Event(id=1, title="Market", date=DateKey(2024, 3, 9))])
        self.assertEqual([item.event.id for item in self.view.events_on(DateKey(2024, 3, 9))], [1])

        await self._load([])
        self.assertEqual(self.view.events_on(DateKey(2024, 3, 9)), ())

    async def test_adjacent_month_cells_show_events(self) -> None:
        await self._load([Event(id=1, title="Leap party", date=DateKey(2024, 2, 29))])
        first_week = self.view.weeks()[0]
        leap_cell = next(cell for cell in first_week if cell.cell.date == DateKey(2024, 2, 29))
        self.assertFalse(leap_cell.cell.in_current_month)
        self.assertEqual(len(leap_cell.occurrences), 1)

    async def test_navigation_reindexes_recurring_events(self) -> None:
        weekly = Event(id=1, title="Choir", date=DateKey(2024, 3, 5), recurrence=RecurrenceRule("weekly", 1))
        await self._load([weekly])
        self.view.navigate(1)
        self.assertEqual(self.view.title, "April 2024")
        self.assertEqual(len(self.view.events_on(DateKey(2024, 4, 30))), 1)
        self.view.navigate(-13)
        self.assertEqual((self.view.year, self.view.month), (2023, 3))
        self.assertEqual(len(self.view.index), 0)
        self.view.go_to_today()
        self.assertEqual((self.view.year, self.view.month), (2024, 3))

    def test_go_to_outside_date_range_keeps_current_month(self) -> None:
        with self.assertRaises(ValidationError):
            self.view.go_to(10000, 1)
        self.assertEqual((self.view.year, self.view.month), (2024, 3))

    async def test_cells_cap_visible_events(self) -> None:
        day = DateKey(2024, 3, 20)
        events = [Event(id=n, title=f"Talk {n}", date=day, time=time(9 + n, 0)) for n in range(5)]
        await self._load(events)
        cell = next(cell for cell in self.view.cells() if cell.cell.date == day)
        self.assertEqual([item.event.id for item in cell.visible], [0, 1, 2])
        self.assertEqual(cell.overflow, 2)
        payload = cell.to_dict()
        self.assertEqual(payload["more"], 2)
        self.assertEqual(len(payload["events"]), 3)

    async def test_open_shared_uses_loaded_events(self) -> None:
        event = Event(id=8, title="Workshop", date=DateKey(2024, 3, 14))
        await self._load([event])
        self.assertEqual(self.view.open_shared("https://calendar.example.com/?id=8"), event)
        self.assertIsNone(self.view.open_shared("https://calendar.example.com/?id=9"))

    def test_to_dict_shape(self) -> None:
        payload = self.view.to_dict()
        self.assertEqual(payload["weekdays"][0], "Sun")
        self.assertTrue(all(len(week) == 7 for week in payload["weeks"]))
        self.assertEqual(payload["weeks"][0][0]["date"], "2024-02-25")

    async def test_detach_stops_reindexing(self) -> None:
        self.view.detach()
        await self._load([Event(id=1, title="Ignored", date=DateKey(2024, 3, 9))])
        self.assertEqual(self.view.events_on(DateKey(2024, 3, 9)), ())


if __name__ == "__main__":
    unittest.main()
