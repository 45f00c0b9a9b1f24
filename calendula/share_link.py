from __future__ import annotations

from typing import Iterable
from urllib.parse import parse_qs, quote, urlencode, urlsplit, urlunsplit

from calendula.models import Event, format_time_of_day


SHARE_QUERY_PARAM = "id"


class ShareLinkCodec:
    """Deep links that open one event of the calendar page."""

    def __init__(self, page_url: str) -> None:
        parts = urlsplit(page_url)
        # Only origin and path identify the page; query and fragment are dropped.
        self.page_url = urlunsplit((parts.scheme, parts.netloc, parts.path or "/", "", ""))

    def encode(self, event: Event) -> str:
        parts = urlsplit(self.page_url)
        query = urlencode({SHARE_QUERY_PARAM: str(event.id)})
        return urlunsplit((parts.scheme, parts.netloc, parts.path, query, ""))

    @staticmethod
    def shared_id(url: str) -> str | None:
        values = parse_qs(urlsplit(url).query).get(SHARE_QUERY_PARAM)
        if not values:
            return None
        return values[0].strip() or None

    def decode(self, url: str, events: Iterable[Event]) -> Event | None:
        """Find the linked event among already-loaded events; never fetches."""

        event_id = self.shared_id(url)
        if event_id is None:
            return None
        for event in events:
            if str(event.id) == event_id:
                return event
        return None

    def share_text(self, event: Event) -> str:
        text = f"Join me for {event.title} on {event.date}"
        if event.time is not None:
            text += f" at {format_time_of_day(event.time)}"
        return text

    def mailto_link(self, event: Event) -> str:
        subject = quote(f"Invitation: {event.title}", safe="")
        body = quote(f"{self.share_text(event)}\n\nView event details: {self.encode(event)}", safe="")
        return f"mailto:?subject={subject}&body={body}"

    def whatsapp_link(self, event: Event) -> str:
        text = quote(f"{self.share_text(event)}\n{self.encode(event)}", safe="")
        return f"https://wa.me/?text={text}"
