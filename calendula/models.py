from __future__ import annotations

import calendar
import re
from dataclasses import asdict, dataclass, field
from datetime import date, time, timedelta
from typing import Any

from calendula.errors import ValidationError


RECURRENCE_TYPES = ("daily", "weekly", "monthly", "yearly")
DEFAULT_RECURRENCE_TYPE = "weekly"

DATE_KEY_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
TIME_PATTERN = re.compile(r"^(\d{2}):(\d{2})(?::(\d{2}))?$")

EVENT_WIRE_FIELDS = (
    "id",
    "title",
    "description",
    "event_date",
    "event_time",
    "organizer",
    "is_recurring",
    "recurrence_type",
    "recurrence_interval",
    "recurrence_end_date",
)


@dataclass(frozen=True, order=True)
class DateKey:
    """A timezone-free calendar date used as the identity of a grid day."""

    year: int
    month: int
    day: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month out of range: {self.month}")
        if self.year < 1 or self.year > 9999:
            raise ValueError(f"year out of range: {self.year}")
        last_day = calendar.monthrange(self.year, self.month)[1]
        if not 1 <= self.day <= last_day:
            raise ValueError(f"day out of range for {self.year}-{self.month:02d}: {self.day}")

    @classmethod
    def parse(cls, value: str) -> "DateKey":
        match = DATE_KEY_PATTERN.match(str(value or "").strip())
        if not match:
            raise ValueError(f"not a YYYY-MM-DD date: {value!r}")
        return cls(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    @classmethod
    def from_date(cls, value: date) -> "DateKey":
        return cls(value.year, value.month, value.day)

    @classmethod
    def today(cls) -> "DateKey":
        return cls.from_date(date.today())

    def to_date(self) -> date:
        return date(self.year, self.month, self.day)

    def add_days(self, days: int) -> "DateKey":
        return DateKey.from_date(self.to_date() + timedelta(days=days))

    def format(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"

    def __str__(self) -> str:
        return self.format()


def is_same_day(left: DateKey, right: DateKey) -> bool:
    return (left.year, left.month, left.day) == (right.year, right.month, right.day)


def parse_date_key(value: Any) -> DateKey | None:
    if value is None or value == "":
        return None
    if isinstance(value, DateKey):
        return value
    if isinstance(value, date):
        return DateKey.from_date(value)
    return DateKey.parse(str(value))


def parse_time_of_day(value: Any) -> time | None:
    if value is None or value == "":
        return None
    if isinstance(value, time):
        return value
    match = TIME_PATTERN.match(str(value).strip())
    if not match:
        raise ValueError(f"not a HH:MM time: {value!r}")
    return time(int(match.group(1)), int(match.group(2)), int(match.group(3) or 0))


def format_time_of_day(value: time | None) -> str | None:
    if value is None:
        return None
    if value.second:
        return value.strftime("%H:%M:%S")
    return value.strftime("%H:%M")


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: str = DEFAULT_RECURRENCE_TYPE
    interval: int = 1
    end_date: DateKey | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RecurrenceRule":
        frequency = str(data.get("recurrence_type") or DEFAULT_RECURRENCE_TYPE).strip().lower()
        raw_interval = data.get("recurrence_interval")
        interval = 1 if raw_interval is None or raw_interval == "" else int(raw_interval)
        return cls(
            frequency=frequency,
            interval=interval,
            end_date=parse_date_key(data.get("recurrence_end_date")),
        )

    @property
    def is_valid(self) -> bool:
        return self.frequency in RECURRENCE_TYPES and self.interval >= 1


@dataclass(frozen=True)
class Event:
    id: Any
    title: str
    date: DateKey
    time: time | None = None
    description: str | None = None
    organizer: str | None = None
    recurrence: RecurrenceRule | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None

    @property
    def is_all_day(self) -> bool:
        return self.time is None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Event":
        if data.get("id") is None:
            raise ValueError("event payload is missing an id")
        event_date = parse_date_key(data.get("event_date"))
        if event_date is None:
            raise ValueError(f"event {data.get('id')!r} is missing event_date")
        recurrence = RecurrenceRule.from_dict(data) if data.get("is_recurring") else None
        return cls(
            id=data["id"],
            title=str(data.get("title") or ""),
            date=event_date,
            time=parse_time_of_day(data.get("event_time")),
            description=_optional_text(data.get("description")),
            organizer=_optional_text(data.get("organizer")),
            recurrence=recurrence,
            extra={key: value for key, value in data.items() if key not in EVENT_WIRE_FIELDS},
        )

    def to_dict(self) -> dict[str, Any]:
        rule = self.recurrence
        payload: dict[str, Any] = dict(self.extra)
        payload.update(
            {
                "id": self.id,
                "title": self.title,
                "description": self.description,
                "event_date": self.date.format(),
                "event_time": format_time_of_day(self.time),
                "organizer": self.organizer,
                "is_recurring": rule is not None,
                "recurrence_type": rule.frequency if rule else None,
                "recurrence_interval": rule.interval if rule else None,
                "recurrence_end_date": rule.end_date.format() if rule and rule.end_date else None,
            }
        )
        return payload


@dataclass
class EventDraft:
    """Form state for a new or edited event, normalized once before sending."""

    title: str = ""
    date: DateKey | None = None
    time: time | None = None
    description: str | None = None
    organizer: str | None = None
    is_recurring: bool = False
    recurrence_type: str = DEFAULT_RECURRENCE_TYPE
    recurrence_interval: int | None = 1
    recurrence_end_date: DateKey | None = None

    @classmethod
    def from_event(cls, event: Event) -> "EventDraft":
        rule = event.recurrence
        return cls(
            title=event.title,
            date=event.date,
            time=event.time,
            description=event.description,
            organizer=event.organizer,
            is_recurring=rule is not None,
            recurrence_type=rule.frequency if rule else DEFAULT_RECURRENCE_TYPE,
            recurrence_interval=rule.interval if rule else 1,
            recurrence_end_date=rule.end_date if rule else None,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EventDraft":
        try:
            event_date = parse_date_key(data.get("event_date"))
            event_time = parse_time_of_day(data.get("event_time"))
            end_date = parse_date_key(data.get("recurrence_end_date"))
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        raw_interval = data.get("recurrence_interval", 1)
        try:
            interval = None if raw_interval is None or raw_interval == "" else int(raw_interval)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"recurrence_interval must be an integer: {raw_interval!r}") from exc
        return cls(
            title=str(data.get("title") or ""),
            date=event_date,
            time=event_time,
            description=data.get("description"),
            organizer=data.get("organizer"),
            is_recurring=bool(data.get("is_recurring", False)),
            recurrence_type=str(data.get("recurrence_type") or DEFAULT_RECURRENCE_TYPE).strip().lower(),
            recurrence_interval=interval,
            recurrence_end_date=end_date,
        )

    def validate(self) -> None:
        if not self.title or not self.title.strip():
            raise ValidationError("Event title is required.")
        if self.date is None:
            raise ValidationError("Event date is required.")
        if self.is_recurring:
            if self.recurrence_type not in RECURRENCE_TYPES:
                raise ValidationError(f"Unknown recurrence type: {self.recurrence_type!r}")
            if self.recurrence_interval is None or self.recurrence_interval < 1:
                raise ValidationError("Recurrence interval must be at least 1.")

    def to_payload(self) -> dict[str, Any]:
        recurring = bool(self.is_recurring)
        return {
            "title": self.title.strip(),
            "description": _optional_text(self.description),
            "event_date": self.date.format() if self.date else None,
            "event_time": format_time_of_day(self.time),
            "organizer": _optional_text(self.organizer),
            "is_recurring": recurring,
            "recurrence_type": self.recurrence_type if recurring else None,
            "recurrence_interval": int(self.recurrence_interval) if recurring else None,
            "recurrence_end_date": (
                self.recurrence_end_date.format() if recurring and self.recurrence_end_date else None
            ),
        }


@dataclass(frozen=True)
class DayCell:
    date: DateKey
    in_current_month: bool


@dataclass(frozen=True)
class Occurrence:
    event: Event
    date: DateKey


@dataclass
class CalendarStats:
    total_events: int = 0
    events_this_month: int = 0
    upcoming_events: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "CalendarStats":
        data = data or {}
        return cls(
            total_events=int(data.get("total_events", 0) or 0),
            events_this_month=int(data.get("events_this_month", 0) or 0),
            upcoming_events=int(data.get("upcoming_events", 0) or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RemoteConfig:
    base_url: str = "http://127.0.0.1:8000/api"
    probe_url: str = ""
    timeout_seconds: int = 30

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RemoteConfig":
        data = data or {}
        return cls(
            base_url=str(data.get("base_url", cls.base_url)).strip().rstrip("/") or cls.base_url,
            probe_url=str(data.get("probe_url", "") or "").strip(),
            timeout_seconds=max(1, int(data.get("timeout_seconds", 30))),
        )

    @property
    def service_root(self) -> str:
        if self.probe_url:
            return self.probe_url
        base = self.base_url.rstrip("/")
        if base.endswith("/api"):
            base = base[: -len("/api")]
        return f"{base}/"


@dataclass
class ViewConfig:
    waking_delay_ms: int = 200
    max_events_per_cell: int = 3

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ViewConfig":
        data = data or {}
        return cls(
            waking_delay_ms=max(0, int(data.get("waking_delay_ms", 200))),
            max_events_per_cell=max(1, int(data.get("max_events_per_cell", 3))),
        )


@dataclass
class ShareConfig:
    page_url: str = "http://127.0.0.1:5173/"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ShareConfig":
        data = data or {}
        return cls(page_url=str(data.get("page_url", cls.page_url)).strip() or cls.page_url)


@dataclass
class LoggingConfig:
    level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "LoggingConfig":
        data = data or {}
        return cls(level=str(data.get("level", "INFO")).strip().upper() or "INFO")


@dataclass
class AppConfig:
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    view: ViewConfig = field(default_factory=ViewConfig)
    share: ShareConfig = field(default_factory=ShareConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AppConfig":
        data = data or {}
        return cls(
            remote=RemoteConfig.from_dict(data.get("remote")),
            view=ViewConfig.from_dict(data.get("view")),
            share=ShareConfig.from_dict(data.get("share")),
            logging=LoggingConfig.from_dict(data.get("logging")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def default_app_config() -> AppConfig:
    return AppConfig()
