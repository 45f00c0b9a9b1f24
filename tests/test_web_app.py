import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fastapi.testclient import TestClient

from calendula.errors import NotFoundError, TransportError
from calendula.models import CalendarStats, DateKey, Event
from calendula.web_app import AppContext, create_app


def _event(event_id: int, title: str, day: int) -> Event:
    return Event(id=event_id, title=title, date=DateKey(2024, 3, day))


class WebAppTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        config_path = str(Path(self.temp_dir.name) / "config.yaml")
        self.store = mock.Mock()
        self.store.ping.return_value = None
        self.store.list_events.return_value = [_event(1, "Market", 9), _event(2, "Choir", 9)]
        self.store.fetch_stats.return_value = CalendarStats(total_events=2, events_this_month=2, upcoming_events=1)
        context = AppContext(config_path=config_path, client=self.store, today=DateKey(2024, 3, 12))
        self.client = TestClient(create_app(context))
        self.client.__enter__()

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)
        self.temp_dir.cleanup()

    def test_healthz(self) -> None:
        resp = self.client.get("/healthz")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})

    def test_startup_loads_events_and_stats(self) -> None:
        resp = self.client.get("/api/status")
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["event_count"], 2)
        self.assertEqual(data["stats"]["total_events"], 2)
        self.assertIsNone(data["error"])
        self.assertFalse(data["backend_waking"])

    def test_month_grid_includes_events(self) -> None:
        resp = self.client.get("/api/month", params={"year": 2024, "month": 3})
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["title"], "March 2024")
        cells = [cell for week in data["weeks"] for cell in week]
        ninth = next(cell for cell in cells if cell["date"] == "2024-03-09")
        self.assertEqual([event["title"] for event in ninth["events"]], ["Market", "Choir"])
        self.assertTrue(next(cell for cell in cells if cell["date"] == "2024-03-12")["is_today"])

    def test_month_overflow_normalizes(self) -> None:
        data = self.client.get("/api/month", params={"year": 2024, "month": 13}).json()
        self.assertEqual((data["year"], data["month"]), (2025, 1))

    def test_month_outside_date_range_is_422(self) -> None:
        resp = self.client.get("/api/month", params={"year": 10000, "month": 1})
        self.assertEqual(resp.status_code, 422)
        self.assertEqual(self.client.get("/api/month").json()["title"], "March 2024")

    def test_create_event(self) -> None:
        created = _event(3, "Hack night", 20)
        self.store.create_event.return_value = created
        self.store.list_events.return_value = [_event(1, "Market", 9), _event(2, "Choir", 9), created]
        resp = self.client.post("/api/events", json={"title": "Hack night", "event_date": "2024-03-20"})
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["event"]["id"], 3)
        payload = self.store.create_event.call_args.args[0]
        self.assertIsNone(payload["organizer"])
        self.assertEqual(self.client.get("/api/status").json()["event_count"], 3)

    def test_create_with_empty_title_is_rejected_locally(self) -> None:
        resp = self.client.post("/api/events", json={"title": "", "event_date": "2024-03-20"})
        self.assertEqual(resp.status_code, 422)
        self.store.create_event.assert_not_called()

    def test_create_with_malformed_date_is_rejected_locally(self) -> None:
        resp = self.client.post("/api/events", json={"title": "x", "event_date": "20/03/2024"})
        self.assertEqual(resp.status_code, 422)
        self.store.create_event.assert_not_called()

    def test_update_missing_event_is_404(self) -> None:
        self.store.update_event.side_effect = NotFoundError("Event not found")
        resp = self.client.put("/api/events/99", json={"title": "x", "event_date": "2024-03-20"})
        self.assertEqual(resp.status_code, 404)
        self.assertIn("Failed to update event", resp.json()["detail"])

    def test_delete_transport_failure_is_502(self) -> None:
        self.store.delete_event.side_effect = TransportError("connection reset")
        resp = self.client.delete("/api/events/1")
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(self.client.get("/api/status").json()["event_count"], 2)

    def test_delete_event(self) -> None:
        self.store.delete_event.return_value = None
        self.store.list_events.return_value = [_event(2, "Choir", 9)]
        resp = self.client.delete("/api/events/1")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["deleted"], "1")
        self.assertEqual([event["id"] for event in self.client.get("/api/events").json()], [2])

    def test_share_and_open_round_trip(self) -> None:
        share = self.client.get("/api/events/1/share").json()
        self.assertTrue(share["url"].endswith("?id=1"))
        self.assertIn("Join me for Market", share["text"])
        opened = self.client.get("/api/open", params={"url": share["url"]})
        self.assertEqual(opened.status_code, 200)
        self.assertEqual(opened.json()["title"], "Market")
        self.assertEqual(self.client.get("/api/events/77/share").status_code, 404)
        self.assertEqual(self.client.get("/api/open", params={"url": "https://x.example.com/?id=77"}).status_code, 404)

    def test_config_roundtrip(self) -> None:
        resp = self.client.put("/api/config", json={"payload": {"view": {"max_events_per_cell": 5}}})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["config"]["view"]["max_events_per_cell"], 5)
        self.assertEqual(self.client.get("/api/config").json()["view"]["max_events_per_cell"], 5)


if __name__ == "__main__":
    unittest.main()
