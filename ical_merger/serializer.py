"""Rendering of the merged calendar as an RFC 5545 document.

Output is UTF-8 with CRLF line endings, every content line folded at 75
octets. The calendar header, the single VTIMEZONE and each VEVENT are
emitted in a fixed order so two runs over the same input produce the same
bytes apart from DTSTAMP values synthesized from the generation time.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterator

from icalendar.parser import Parameters, foldline
from icalendar.prop import vText

from . import __version__
from .date_normalizer import date_property, ical_text
from .ics_models import Component, Event, MergedCalendar, Property

logger = logging.getLogger(__name__)

CRLF = "\r\n"
MAX_LINE_OCTETS = 75
PRODID = f"-//ical_merger//NONSGML v{__version__}//EN"


def format_property(prop: Property) -> str:
    """Render a property as one unfolded content line (without CRLF)."""
    params = Parameters({key: values for key, values in prop.params.items() if key})
    if not params:
        return f"{prop.name}:{prop.value}"
    rendered = params.to_ical(sorted=False).decode("utf-8")
    return f"{prop.name};{rendered}:{prop.value}"


def fold_line(line: str) -> str:
    """Fold ``line`` so no physical line exceeds 75 octets.

    Continuation lines start with a single space, which counts towards their
    75 octets. Multi-byte UTF-8 sequences are never split.
    """
    return foldline(line, limit=MAX_LINE_OCTETS, fold_sep=CRLF + " ")


def _utc_stamp(moment: datetime.datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.timezone.utc)
    return moment.astimezone(datetime.timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _component_lines(component: Component) -> Iterator[str]:
    yield f"BEGIN:{component.name}"
    for prop in component.properties:
        yield format_property(prop)
    for sub in component.components:
        yield from _component_lines(sub)
    yield f"END:{component.name}"


def _event_lines(event: Event, generated_at: datetime.datetime) -> Iterator[str]:
    yield "BEGIN:VEVENT"
    yield format_property(Property("UID", event.uid))

    stamps = [p for p in event.properties if p.name == "DTSTAMP"]
    if stamps:
        yield format_property(stamps[0])
    else:
        yield format_property(Property("DTSTAMP", _utc_stamp(generated_at)))

    yield format_property(Property("SUMMARY", event.summary))
    yield format_property(date_property("DTSTART", event.dtstart))
    if event.dtend is not None:
        yield format_property(date_property("DTEND", event.dtend))

    for prop in event.properties:
        if prop.name == "DTSTAMP":
            continue
        yield format_property(prop)
    yield "END:VEVENT"


def calendar_lines(merged: MergedCalendar) -> Iterator[str]:
    """Yield every unfolded content line of the merged document."""
    yield "BEGIN:VCALENDAR"
    yield "VERSION:2.0"
    yield f"PRODID:{PRODID}"
    yield "CALSCALE:GREGORIAN"
    yield "METHOD:PUBLISH"
    yield f"X-WR-CALNAME:{ical_text(vText(merged.calendar_name))}"
    yield f"X-WR-TIMEZONE:{merged.output_timezone}"
    yield from _component_lines(merged.vtimezone)
    for event in merged.events:
        yield from _event_lines(event, merged.generated_at)
    yield "END:VCALENDAR"


def serialize_calendar(merged: MergedCalendar) -> bytes:
    """Render ``merged`` as UTF-8 bytes with CRLF line endings."""
    lines = [fold_line(line) for line in calendar_lines(merged)]
    data = (CRLF.join(lines) + CRLF).encode("utf-8")
    logger.debug("Serialized %d events into %d bytes", len(merged.events), len(data))
    return data
