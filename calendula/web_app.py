from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from calendula.calendar_view import CalendarView
from calendula.config_manager import ConfigManager
from calendula.errors import CalendarError, NotFoundError, PendingMutationError, ValidationError
from calendula.logging_config import configure_logging
from calendula.models import DateKey, EventDraft
from calendula.share_link import ShareLinkCodec
from calendula.store_client import EventStoreClient
from calendula.sync_controller import OperationResult, SyncController


class EventDraftRequest(BaseModel):
    title: str = ""
    description: str | None = None
    event_date: str | None = None
    event_time: str | None = None
    organizer: str | None = None
    is_recurring: bool = False
    recurrence_type: str | None = "weekly"
    recurrence_interval: int | None = 1
    recurrence_end_date: str | None = None


class ConfigUpdateRequest(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)


class AppContext:
    def __init__(
        self,
        config_path: str,
        client: EventStoreClient | None = None,
        today: DateKey | None = None,
    ) -> None:
        self.config_manager = ConfigManager(config_path)
        config = self.config_manager.load()
        self.client = client or EventStoreClient(config.remote)
        self.controller = SyncController(self.client, waking_delay=config.view.waking_delay_ms / 1000)
        self.codec = ShareLinkCodec(config.share.page_url)
        self.view = CalendarView(
            self.controller,
            self.codec,
            today=today,
            max_events_per_cell=config.view.max_events_per_cell,
        )


def _status_code_for(error: CalendarError) -> int:
    if isinstance(error, ValidationError):
        return 422
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, PendingMutationError):
        return 409
    return 502


def _draft_from_request(request: EventDraftRequest) -> EventDraft:
    try:
        return EventDraft.from_dict(request.model_dump())
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.message) from exc


def create_app(context: AppContext | None = None) -> FastAPI:
    if context is None:
        config_path = os.getenv("CALENDULA_CONFIG_PATH", "config.yaml")
        context = AppContext(config_path=config_path)
    configure_logging(context.config_manager.load().logging.level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await app.state.context.controller.connect()
        yield
        app.state.context.view.detach()
        app.state.context.controller.close()

    app = FastAPI(title="Calendula", version="0.1.0", lifespan=lifespan)
    app.state.context = context

    def _check(result: OperationResult) -> None:
        if result.ok:
            return
        detail = app.state.context.controller.state.error or result.error.message
        raise HTTPException(status_code=_status_code_for(result.error), detail=detail)

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/status")
    async def status() -> dict[str, Any]:
        controller = app.state.context.controller
        payload = controller.state.to_dict()
        payload["event_count"] = len(controller.events)
        return payload

    @app.get("/api/month")
    async def month(year: int | None = None, month: int | None = None) -> dict[str, Any]:
        view = app.state.context.view
        if year is not None or month is not None:
            try:
                view.go_to(year if year is not None else view.year, month if month is not None else view.month)
            except ValidationError as exc:
                raise HTTPException(status_code=422, detail=exc.message) from exc
        return view.to_dict()

    @app.get("/api/events")
    async def list_events() -> list[dict[str, Any]]:
        return [event.to_dict() for event in app.state.context.controller.events]

    @app.post("/api/refresh")
    async def refresh() -> dict[str, Any]:
        controller = app.state.context.controller
        _check(await controller.list_events())
        await controller.fetch_stats()
        return {"event_count": len(controller.events)}

    @app.post("/api/events", status_code=201)
    async def create_event(request: EventDraftRequest) -> dict[str, Any]:
        controller = app.state.context.controller
        result = await controller.create_event(_draft_from_request(request))
        _check(result)
        await controller.fetch_stats()
        return {"event": result.value.to_dict(), "warning": controller.state.warning}

    @app.put("/api/events/{event_id}")
    async def update_event(event_id: str, request: EventDraftRequest) -> dict[str, Any]:
        controller = app.state.context.controller
        result = await controller.update_event(event_id, _draft_from_request(request))
        _check(result)
        await controller.fetch_stats()
        return {"event": result.value.to_dict(), "warning": controller.state.warning}

    @app.delete("/api/events/{event_id}")
    async def delete_event(event_id: str) -> dict[str, Any]:
        controller = app.state.context.controller
        _check(await controller.delete_event(event_id))
        await controller.fetch_stats()
        return {"deleted": event_id, "warning": controller.state.warning}

    @app.get("/api/events/{event_id}/share")
    async def share_event(event_id: str) -> dict[str, str]:
        context = app.state.context
        event = context.controller.find(event_id)
        if event is None:
            raise HTTPException(status_code=404, detail="event not found")
        return {
            "url": context.codec.encode(event),
            "text": context.codec.share_text(event),
            "mailto": context.codec.mailto_link(event),
            "whatsapp": context.codec.whatsapp_link(event),
        }

    @app.get("/api/open")
    async def open_shared(url: str) -> dict[str, Any]:
        event = app.state.context.view.open_shared(url)
        if event is None:
            raise HTTPException(status_code=404, detail="event not found in loaded events")
        return event.to_dict()

    @app.get("/api/config")
    def get_config() -> dict[str, Any]:
        return app.state.context.config_manager.load().to_dict()

    @app.put("/api/config")
    def put_config(request: ConfigUpdateRequest) -> dict[str, Any]:
        updated = app.state.context.config_manager.update(request.payload)
        return {
            "message": "config updated; restart to apply remote and share settings",
            "config": updated.to_dict(),
        }

    return app
