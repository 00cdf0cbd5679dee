"""Read-side views over the merged document served in HTTP mode.

The merged file is re-read into ``Event`` objects so the JSON API and the
summary calendar can select events by date. An event belongs to a window
when the local date of its DTSTART, in the output timezone, falls between
the window bounds; both bounds are inclusive.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from icalendar.prop import vCategory, vText

from .ics_models import DateOnly, DateValue, Event, MergedCalendar, Zoned
from .ics_parser import parse_calendar
from .source_pipeline import build_event
from .timezone_utils import TimezoneRegistry
from .vtimezone import build_vtimezone

logger = logging.getLogger(__name__)

DEFAULT_DAYS_BACK = 1
DEFAULT_DAYS_FORWARD = 30
SUMMARY_WINDOW_DAYS = 30
SUMMARY_CALENDAR_NAME = "Summary Calendar"

MERGED_SOURCE_NAME = "merged"


@dataclass(frozen=True)
class DateWindow:
    """An inclusive range of calendar days."""

    start: datetime.date
    end: datetime.date

    @classmethod
    def around(cls, today: datetime.date, days_back: int, days_forward: int) -> DateWindow:
        return cls(
            start=today - datetime.timedelta(days=days_back),
            end=today + datetime.timedelta(days=days_forward),
        )

    def contains(self, day: datetime.date) -> bool:
        return self.start <= day <= self.end

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def parse_day_count(raw: Optional[str], default: int) -> int:
    """Return ``raw`` as a positive day count, or ``default`` when it is not one."""
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.debug("Ignoring non-numeric day count %r", raw)
        return default
    return value if value > 0 else default


def local_today(
    now: datetime.datetime, output_tzid: str, registry: TimezoneRegistry
) -> datetime.date:
    """Return the current date in the output timezone."""
    return now.astimezone(registry.resolve(output_tzid)).date()


def start_day(event: Event) -> datetime.date:
    """Return the local date on which ``event`` starts."""
    if isinstance(event.dtstart, DateOnly):
        return event.dtstart.date
    if isinstance(event.dtstart, Zoned):
        return event.dtstart.local.date()
    raise TypeError(f"Unexpected value in merged output: {event.dtstart!r}")


def load_events(
    data: Union[bytes, str], output_tzid: str, registry: TimezoneRegistry
) -> list[Event]:
    """Re-read a merged document into events.

    Raises:
        ParseError: if the document is not a calendar
        MalformedPropertyError: if an event cannot be decoded
    """
    calendar = parse_calendar(MERGED_SOURCE_NAME, data)
    events = []
    for component in calendar.events:
        event, _ = build_event(component, MERGED_SOURCE_NAME, output_tzid, registry)
        events.append(event)
    return events


def filter_events_by_date_range(events: list[Event], window: DateWindow) -> list[Event]:
    """Keep the events starting inside ``window``, in document order."""
    kept = [event for event in events if window.contains(start_day(event))]
    logger.debug(
        "Date filter %s..%s kept %d of %d events",
        window.start,
        window.end,
        len(kept),
        len(events),
    )
    return kept


def _text(event: Event, name: str) -> str:
    for prop in event.properties:
        if prop.name == name:
            return str(vText.from_ical(prop.value))
    return ""


def _categories(event: Event) -> list[str]:
    categories: list[str] = []
    for prop in event.properties:
        if prop.name != "CATEGORIES":
            continue
        categories.extend(c.strip() for c in vCategory.from_ical(prop.value) if c.strip())
    return categories


def _iso(value: DateValue, registry: TimezoneRegistry) -> str:
    if isinstance(value, DateOnly):
        return value.date.isoformat()
    if isinstance(value, Zoned):
        return value.local.replace(tzinfo=registry.resolve(value.tzid)).isoformat()
    raise TypeError(f"Unexpected value in merged output: {value!r}")


def event_to_json(event: Event, registry: TimezoneRegistry) -> dict[str, Any]:
    """Describe one event for the JSON API."""
    return {
        "uid": event.uid,
        "summary": str(vText.from_ical(event.summary)),
        "start": _iso(event.dtstart, registry),
        "end": _iso(event.dtend, registry) if event.dtend is not None else None,
        "all_day": event.is_all_day,
        "location": _text(event, "LOCATION"),
        "description": _text(event, "DESCRIPTION"),
        "status": (_text(event, "STATUS") or "confirmed").lower(),
        "categories": _categories(event),
    }


def events_to_json(
    events: list[Event],
    output_tzid: str,
    registry: TimezoneRegistry,
    window: Optional[DateWindow] = None,
) -> dict[str, Any]:
    """Build the /api/calendar payload."""
    payload: dict[str, Any] = {
        "timezone": output_tzid,
        "count": len(events),
        "events": [event_to_json(event, registry) for event in events],
    }
    if window is not None:
        payload["date_range"] = window.to_dict()
    return payload


def summary_calendar(
    events: list[Event],
    output_tzid: str,
    registry: TimezoneRegistry,
    generated_at: datetime.datetime,
) -> MergedCalendar:
    """Wrap already filtered events in a calendar with its own VTIMEZONE.

    Raises:
        UnknownTimezoneError: if the output timezone cannot be resolved
    """
    return MergedCalendar(
        events=events,
        output_timezone=output_tzid,
        vtimezone=build_vtimezone(output_tzid, registry, generated_at.year),
        generated_at=generated_at,
        calendar_name=SUMMARY_CALENDAR_NAME,
    )
