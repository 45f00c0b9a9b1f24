from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable

from calendula.errors import CalendarError, ExportError, PendingMutationError, ValidationError
from calendula.models import CalendarStats, Event, EventDraft
from calendula.store_client import EventStoreClient

logger = logging.getLogger(__name__)

IDLE = "idle"
PENDING = "pending"
COMMITTED = "committed"
FAILED = "failed"

DEFAULT_EXPORT_FILENAME = "community-calendar.ics"
REFRESH_WARNING = "Your change was saved, but the calendar could not be refreshed."

EventsListener = Callable[[tuple[Event, ...]], None]


def _id_key(event_id: Any) -> str:
    return str(event_id)


@dataclass
class SyncState:
    loading: bool = False
    error: str | None = None
    warning: str | None = None
    backend_waking: bool = False
    stats: CalendarStats | None = None
    last_error: CalendarError | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "loading": self.loading,
            "error": self.error,
            "warning": self.warning,
            "backend_waking": self.backend_waking,
            "stats": self.stats.to_dict() if self.stats else None,
            "error_type": type(self.last_error).__name__ if self.last_error else None,
        }


@dataclass
class OperationResult:
    value: Any = None
    error: CalendarError | None = None
    warning: CalendarError | None = None
    discarded: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class SyncController:
    """Owns the local event collection and keeps it in step with the remote store.

    Local state only changes after the remote store confirms a mutation. Every
    successful mutation is followed by a full reload of the collection; the
    reload that lands last replaces local state. Failures are recorded on
    ``state`` and returned in the ``OperationResult`` rather than raised.
    """

    def __init__(self, client: EventStoreClient, *, waking_delay: float = 0.2) -> None:
        self.client = client
        self.waking_delay = waking_delay
        self.state = SyncState()
        self._events: list[Event] = []
        self._listeners: list[EventsListener] = []
        self._pending: set[str] = set()
        self._outcomes: dict[str, str] = {}
        self._in_flight = 0
        self._probed = False
        self._closed = False

    @property
    def events(self) -> tuple[Event, ...]:
        return tuple(self._events)

    @property
    def closed(self) -> bool:
        return self._closed

    def find(self, event_id: Any) -> Event | None:
        key = _id_key(event_id)
        for event in self._events:
            if _id_key(event.id) == key:
                return event
        return None

    def mutation_status(self, event_id: Any) -> str:
        key = _id_key(event_id)
        if key in self._pending:
            return PENDING
        return self._outcomes.get(key, IDLE)

    def add_listener(self, listener: EventsListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventsListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def close(self) -> None:
        self._closed = True
        self._listeners.clear()
        logger.debug("Sync controller closed; late responses will be discarded")

    def _replace_events(self, events: Iterable[Event]) -> None:
        self._events = list(events)
        snapshot = self.events
        for listener in list(self._listeners):
            listener(snapshot)

    def _reload(self, events: Iterable[Event]) -> None:
        self._replace_events(events)
        # Outcomes are kept only for ids the store still lists.
        known = {_id_key(event.id) for event in self._events}
        self._outcomes = {key: outcome for key, outcome in self._outcomes.items() if key in known}

    def _begin(self) -> None:
        self.state.error = None
        self.state.warning = None
        self.state.last_error = None

    def _fail(self, message: str, exc: CalendarError) -> OperationResult:
        logger.warning("%s (%s: %s)", message, type(exc).__name__, exc.message)
        if not self._closed:
            self.state.error = message
            self.state.last_error = exc
        return OperationResult(error=exc)

    async def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        self._in_flight += 1
        self.state.loading = True
        try:
            return await asyncio.to_thread(func, *args)
        finally:
            self._in_flight -= 1
            self.state.loading = self._in_flight > 0

    async def _refresh_after_mutation(self) -> CalendarError | None:
        try:
            events = await self._call(self.client.list_events)
        except CalendarError as exc:
            logger.warning("Refresh after mutation failed: %s", exc.message)
            if not self._closed:
                self.state.warning = REFRESH_WARNING
            return exc
        if not self._closed:
            self._reload(events)
        return None

    async def connect(self) -> OperationResult:
        """Probe the remote service, then load events and stats.

        Only the very first probe can raise ``state.backend_waking``: if it has
        not answered within ``waking_delay`` seconds the service is probably
        cold-starting.
        """

        self._begin()
        first_probe = not self._probed
        self._probed = True
        probe = asyncio.ensure_future(self._call(self.client.ping))
        try:
            if first_probe:
                done, _ = await asyncio.wait({probe}, timeout=self.waking_delay)
                if not done and not self._closed:
                    logger.info("Remote service is slow to answer; it may be starting up")
                    self.state.backend_waking = True
            await probe
        except CalendarError as exc:
            return self._fail("Could not connect to the backend service.", exc)
        finally:
            self.state.backend_waking = False
        if self._closed:
            return OperationResult(discarded=True)
        result = await self.list_events()
        await self.fetch_stats()
        return result

    async def list_events(self) -> OperationResult:
        self._begin()
        try:
            events = await self._call(self.client.list_events)
        except CalendarError as exc:
            return self._fail("Failed to load events", exc)
        if self._closed:
            return OperationResult(value=events, discarded=True)
        self._reload(events)
        logger.info("Loaded %d events", len(events))
        return OperationResult(value=self.events)

    async def create_event(self, draft: EventDraft) -> OperationResult:
        self._begin()
        try:
            draft.validate()
        except ValidationError as exc:
            return self._fail(f"Failed to create event: {exc.message}", exc)

        try:
            created = await self._call(self.client.create_event, draft.to_payload())
        except CalendarError as exc:
            return self._fail(f"Failed to create event: {exc.message}", exc)
        if self._closed:
            return OperationResult(value=created, discarded=True)

        self._outcomes[_id_key(created.id)] = COMMITTED
        self._replace_events([*self._events, created])
        logger.info("Created event %r on %s", created.id, created.date)
        warning = await self._refresh_after_mutation()
        return OperationResult(value=created, warning=warning)

    async def update_event(self, event_id: Any, draft: EventDraft) -> OperationResult:
        self._begin()
        try:
            draft.validate()
        except ValidationError as exc:
            return self._fail(f"Failed to update event: {exc.message}", exc)
        key = _id_key(event_id)
        if key in self._pending:
            return self._fail(
                "Failed to update event: another change to it is still in progress",
                PendingMutationError(f"event {event_id!r} has a pending mutation"),
            )

        self._pending.add(key)
        try:
            updated = await self._call(self.client.update_event, event_id, draft.to_payload())
        except CalendarError as exc:
            self._outcomes[key] = FAILED
            return self._fail(f"Failed to update event: {exc.message}", exc)
        finally:
            self._pending.discard(key)
        if self._closed:
            return OperationResult(value=updated, discarded=True)

        self._outcomes[key] = COMMITTED
        self._replace_events(updated if _id_key(event.id) == key else event for event in self._events)
        logger.info("Updated event %r", event_id)
        warning = await self._refresh_after_mutation()
        return OperationResult(value=updated, warning=warning)

    async def delete_event(self, event_id: Any) -> OperationResult:
        self._begin()
        key = _id_key(event_id)
        if key in self._pending:
            return self._fail(
                "Failed to delete event: another change to it is still in progress",
                PendingMutationError(f"event {event_id!r} has a pending mutation"),
            )

        self._pending.add(key)
        try:
            await self._call(self.client.delete_event, event_id)
        except CalendarError as exc:
            self._outcomes[key] = FAILED
            return self._fail("Failed to delete event", exc)
        finally:
            self._pending.discard(key)
        if self._closed:
            return OperationResult(discarded=True)

        self._outcomes[key] = COMMITTED
        self._replace_events(event for event in self._events if _id_key(event.id) != key)
        logger.info("Deleted event %r", event_id)
        warning = await self._refresh_after_mutation()
        return OperationResult(warning=warning)

    async def fetch_stats(self) -> CalendarStats | None:
        try:
            stats = await self._call(self.client.fetch_stats)
        except CalendarError as exc:
            logger.warning("Error fetching stats: %s", exc.message)
            return None
        if not self._closed:
            self.state.stats = stats
        return stats

    async def export_calendar(self, destination: str | Path = DEFAULT_EXPORT_FILENAME) -> OperationResult:
        self._begin()
        try:
            content = await self._call(self.client.export_calendar)
        except CalendarError as exc:
            return self._fail("Could not download calendar", exc)
        if self._closed:
            return OperationResult(discarded=True)
        target = Path(destination)
        if target.is_dir():
            target = target / DEFAULT_EXPORT_FILENAME
        try:
            target.write_bytes(content)
        except OSError as exc:
            error = ExportError(f"cannot write {target}: {exc.strerror or exc}")
            return self._fail("Could not download calendar", error)
        logger.info("Exported calendar to %s (%d bytes)", target, len(content))
        return OperationResult(value=target)
