from __future__ import annotations

import logging
from typing import Any

import requests
from icalendar import Calendar as ICalendar

from calendula.errors import NotFoundError, RemoteError, TransportError
from calendula.models import CalendarStats, Event, RemoteConfig

logger = logging.getLogger(__name__)


def _error_detail(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:300] or f"HTTP {response.status_code}"
    if isinstance(payload, dict) and payload.get("detail"):
        detail = payload["detail"]
        if isinstance(detail, list):
            # FastAPI validation errors arrive as a list of {loc, msg} objects.
            messages = [str(item.get("msg", item)) if isinstance(item, dict) else str(item) for item in detail]
            return "; ".join(messages)
        return str(detail)
    return f"HTTP {response.status_code}"


class EventStoreClient:
    """Blocking HTTP client for the remote event store."""

    def __init__(self, config: RemoteConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    def _endpoint(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            return self.session.request(method, url, timeout=self.config.timeout_seconds, **kwargs)
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc

    def _request(self, method: str, path: str, *, missing_is_not_found: bool = False, **kwargs: Any) -> requests.Response:
        url = self._endpoint(path)
        response = self._send(method, url, **kwargs)
        if response.ok:
            return response
        detail = _error_detail(response)
        logger.warning("%s %s returned HTTP %s: %s", method, url, response.status_code, detail)
        if missing_is_not_found and response.status_code == 404:
            raise NotFoundError(detail)
        raise RemoteError(detail, status_code=response.status_code)

    def _event_from_response(self, response: requests.Response) -> Event:
        try:
            return Event.from_dict(response.json())
        except ValueError as exc:
            raise RemoteError(f"Malformed event in response: {exc}", status_code=response.status_code) from exc

    def ping(self) -> None:
        url = self.config.service_root
        response = self._send("GET", url)
        if not response.ok:
            raise RemoteError("Backend not responding", status_code=response.status_code)

    def list_events(self) -> list[Event]:
        response = self._request("GET", "events")
        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteError("Event list is not valid JSON", status_code=response.status_code) from exc
        if not isinstance(payload, list):
            raise RemoteError("Event list must be a JSON array", status_code=response.status_code)
        events: list[Event] = []
        for item in payload:
            if not isinstance(item, dict):
                logger.warning("Skipping event list entry that is not an object: %r", item)
                continue
            try:
                events.append(Event.from_dict(item))
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping malformed event %r: %s", item.get("id"), exc)
        return events

    def create_event(self, payload: dict[str, Any]) -> Event:
        response = self._request("POST", "events", json=payload)
        return self._event_from_response(response)

    def update_event(self, event_id: Any, payload: dict[str, Any]) -> Event:
        response = self._request("PUT", f"events/{event_id}", json=payload, missing_is_not_found=True)
        return self._event_from_response(response)

    def delete_event(self, event_id: Any) -> None:
        self._request("DELETE", f"events/{event_id}", missing_is_not_found=True)

    def fetch_stats(self) -> CalendarStats:
        response = self._request("GET", "stats")
        try:
            return CalendarStats.from_dict(response.json())
        except (TypeError, ValueError) as exc:
            raise RemoteError(f"Malformed stats response: {exc}", status_code=response.status_code) from exc

    def export_calendar(self) -> bytes:
        response = self._request("GET", "calendar/export.ics")
        content = response.content
        try:
            ICalendar.from_ical(content)
        except ValueError as exc:
            raise RemoteError(f"Export is not a valid iCalendar document: {exc}", status_code=response.status_code) from exc
        return content
