"""Per-source processing: VEVENT components to normalized ``Event`` records.

Runs property repair, date classification and normalization over every
VEVENT of one ``SourceCalendar``. Failures are event-scoped: a VEVENT that
cannot be repaired or decoded is dropped and counted, the rest of the source
goes through.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from icalendar.prop import vText

from .date_normalizer import (
    MULTI_VALUE_DATE_PROPERTIES,
    classify,
    coerce_kind,
    ical_text,
    normalize_multi_value_property,
    normalize_with_notes,
)
from .exceptions import MalformedPropertyError
from .ics_models import Component, Event, Property, SourceCalendar
from .property_repair import repair_property
from .timezone_utils import TimezoneRegistry

logger = logging.getLogger(__name__)

# Properties the serializer re-emits itself in a fixed order
_HEADER_PROPERTIES = ("UID", "SUMMARY", "DTSTART", "DTEND")


@dataclass
class PipelineResult:
    """Events produced from one source plus the counters for the cycle report."""

    source_name: str
    events: list[Event] = field(default_factory=list)
    events_in: int = 0
    events_dropped: int = 0
    repairs: int = 0


def _single(props: list[Property], name: str, line_no: Optional[int]) -> Optional[Property]:
    found = [p for p in props if p.name == name]
    if len(found) > 1:
        raise MalformedPropertyError(name, f"{len(found)} occurrences in one event", line_no)
    return found[0] if found else None


def build_event(
    component: Component,
    source_name: str,
    output_tzid: str,
    registry: TimezoneRegistry,
    prefix: Optional[str] = None,
) -> tuple[Event, int]:
    """Turn one VEVENT component into a normalized ``Event``.

    Args:
        component: Parsed VEVENT
        source_name: Name of the originating source, for logs
        output_tzid: Output timezone identifier
        registry: Timezone rule provider
        prefix: Optional text prepended to the SUMMARY

    Returns:
        The event and the number of repairs applied to it

    Raises:
        MalformedPropertyError: if a property cannot be repaired or decoded,
            or UID/DTSTART is missing
    """
    repairs = 0
    props: list[Property] = []
    for prop in component.properties:
        result = repair_property(prop)
        if result.repaired:
            repairs += 1
            logger.warning(
                "Repaired %s in source %s at line %s: %s",
                prop.name,
                source_name,
                prop.line_no,
                "; ".join(result.notes),
            )
        props.append(result.property)

    uid_prop = _single(props, "UID", component.line_no)
    uid = uid_prop.value.strip() if uid_prop else ""
    if not uid:
        raise MalformedPropertyError("UID", "event has no UID", component.line_no)

    dtstart_prop = _single(props, "DTSTART", component.line_no)
    if dtstart_prop is None:
        raise MalformedPropertyError("DTSTART", f"event {uid!r} has no DTSTART", component.line_no)

    dtstart, notes = normalize_with_notes(classify(dtstart_prop), output_tzid, registry)
    repairs += len(notes)

    dtend = None
    dtend_prop = _single(props, "DTEND", component.line_no)
    if dtend_prop is not None:
        dtend, notes = normalize_with_notes(classify(dtend_prop), output_tzid, registry)
        repairs += len(notes)
        dtend, coerced = coerce_kind(dtend, dtstart)
        if coerced:
            repairs += 1
            logger.warning(
                "Coerced DTEND of %s in source %s to match DTSTART (line %s)",
                uid,
                source_name,
                dtend_prop.line_no,
            )

    summary_prop = _single(props, "SUMMARY", component.line_no)
    summary = summary_prop.value if summary_prop else ""
    if prefix:
        summary = f"{ical_text(vText(prefix))}{summary}"

    passthrough: list[Property] = []
    for prop in props:
        if prop.name in _HEADER_PROPERTIES:
            continue
        if prop.name in MULTI_VALUE_DATE_PROPERTIES:
            prop, notes = normalize_multi_value_property(prop, output_tzid, registry)
            repairs += len(notes)
        passthrough.append(prop)

    for sub in component.components:
        logger.debug("Dropping %s inside event %s from source %s", sub.name, uid, source_name)

    event = Event(
        uid=uid,
        summary=summary,
        dtstart=dtstart,
        dtend=dtend,
        properties=passthrough,
        source_name=source_name,
    )
    return event, repairs


def run_source_pipeline(
    calendar: SourceCalendar,
    output_tzid: str,
    registry: TimezoneRegistry,
    prefix: Optional[str] = None,
) -> PipelineResult:
    """Process every VEVENT of ``calendar`` in document order."""
    result = PipelineResult(source_name=calendar.name, events_in=len(calendar.events))

    for component in calendar.events:
        try:
            event, repairs = build_event(
                component, calendar.name, output_tzid, registry, prefix=prefix
            )
        except MalformedPropertyError as e:
            result.events_dropped += 1
            logger.warning(
                "Dropping event at line %s from source %s: %s",
                component.line_no,
                calendar.name,
                e,
            )
            continue
        result.events.append(event)
        result.repairs += repairs

    logger.info(
        "Source %s: %d events in, %d kept, %d dropped, %d repairs",
        calendar.name,
        result.events_in,
        len(result.events),
        result.events_dropped,
        result.repairs,
    )
    return result
