"""Date/time classification and normalization into the output timezone.

``classify`` turns a date-valued property into one of the four ``DateValue``
variants. ``normalize`` re-anchors a value to the output timezone so that only
``DateOnly`` and ``Zoned(output)`` remain. Both are pure functions; the
timezone registry is passed in explicitly.
"""

from __future__ import annotations

import datetime
import logging
import re
from typing import Optional

from icalendar.prop import vDate, vDatetime

from .exceptions import MalformedPropertyError, UnknownTimezoneError
from .ics_models import DateOnly, DateValue, Floating, Property, UtcInstant, Zoned
from .timezone_utils import TimezoneRegistry

logger = logging.getLogger(__name__)

_DATE_ONLY_RE = re.compile(r"^\d{8}$")

# Date-valued event properties besides DTSTART/DTEND that may carry a TZID
MULTI_VALUE_DATE_PROPERTIES = ("RECURRENCE-ID", "EXDATE", "RDATE")


def ical_text(value) -> str:
    """Return the ICS text of an icalendar value type as str."""
    text = value.to_ical()
    if isinstance(text, bytes):
        return text.decode("utf-8")
    return text


def classify(prop: Property) -> DateValue:
    """Classify a date-valued property.

    Priority: ``VALUE=DATE`` or a bare ``YYYYMMDD`` value, then a trailing
    ``Z``, then a ``TZID`` parameter, else floating local time.

    Raises:
        MalformedPropertyError: if the value cannot be parsed as a date or
            date-time, or ``VALUE=DATE`` is combined with a time part
    """
    raw = prop.value.strip()
    value_type = (prop.get_param("VALUE") or "").upper()

    if value_type == "DATE" or _DATE_ONLY_RE.match(raw):
        if "T" in raw.upper():
            raise MalformedPropertyError(
                prop.name, f"VALUE=DATE with a date-time value {raw!r}", prop.line_no
            )
        try:
            return DateOnly(vDate.from_ical(raw))
        except ValueError as e:
            raise MalformedPropertyError(prop.name, f"invalid date {raw!r}", prop.line_no) from e

    is_utc = raw.upper().endswith("Z")
    text = raw[:-1] if is_utc else raw
    try:
        local = vDatetime.from_ical(text)
    except ValueError as e:
        raise MalformedPropertyError(prop.name, f"invalid date-time {raw!r}", prop.line_no) from e
    local = local.replace(tzinfo=None)

    if is_utc:
        return UtcInstant(local.replace(tzinfo=datetime.timezone.utc))

    tzid = prop.get_param("TZID")
    if tzid:
        return Zoned(local, tzid)
    return Floating(local)


def normalize_with_notes(
    value: DateValue,
    output_tzid: str,
    registry: TimezoneRegistry,
) -> tuple[DateValue, list[str]]:
    """Normalize ``value`` and report any fallback applied on the way.

    Returns:
        The normalized value (``DateOnly`` or ``Zoned(output_tzid)``) and a
        list of notes, non-empty when a repair was needed

    Raises:
        UnknownTimezoneError: if ``output_tzid`` itself cannot be resolved
    """
    if isinstance(value, DateOnly):
        return value, []

    if isinstance(value, Floating):
        return Zoned(value.local, output_tzid), []

    output_tz = registry.resolve(output_tzid)

    if isinstance(value, UtcInstant):
        local = value.instant.astimezone(output_tz).replace(tzinfo=None)
        return Zoned(local, output_tzid), []

    if isinstance(value, Zoned):
        if value.tzid == output_tzid:
            return value, []
        try:
            source_tz = registry.resolve(value.tzid)
        except UnknownTimezoneError:
            logger.warning(
                "Unknown source timezone %r, treating %s as %s local time",
                value.tzid,
                value.local.isoformat(),
                output_tzid,
            )
            return Zoned(value.local, output_tzid), [f"unknown TZID {value.tzid!r}"]
        aware = value.local.replace(tzinfo=source_tz)
        local = aware.astimezone(output_tz).replace(tzinfo=None)
        return Zoned(local, output_tzid), []

    raise TypeError(f"Unsupported date value: {value!r}")


def normalize(value: DateValue, output_tzid: str, registry: TimezoneRegistry) -> DateValue:
    """Return ``value`` re-anchored to ``output_tzid``.

    ``DateOnly`` and values already zoned in the output timezone are returned
    unchanged, so normalizing twice is the same as normalizing once.
    """
    normalized, _ = normalize_with_notes(value, output_tzid, registry)
    return normalized


def coerce_kind(value: DateValue, reference: DateValue) -> tuple[DateValue, bool]:
    """Coerce ``value`` to the variant of ``reference``.

    Only meaningful for normalized values. A ``Zoned`` value coerced to
    ``DateOnly`` keeps its local date; a ``DateOnly`` coerced to ``Zoned``
    becomes local midnight in the reference's zone.

    Returns:
        The coerced value and whether anything changed
    """
    if isinstance(reference, DateOnly) and isinstance(value, Zoned):
        return DateOnly(value.local.date()), True
    if isinstance(reference, Zoned) and isinstance(value, DateOnly):
        midnight = datetime.datetime.combine(value.date, datetime.time())
        return Zoned(midnight, reference.tzid), True
    return value, False


def render_date_value(value: DateValue) -> tuple[dict[str, list[str]], str]:
    """Return the parameters and value text for a normalized date value."""
    if isinstance(value, DateOnly):
        return {"VALUE": ["DATE"]}, ical_text(vDate(value.date))
    if isinstance(value, Zoned):
        return {"TZID": [value.tzid]}, ical_text(vDatetime(value.local))
    raise TypeError(f"{type(value).__name__} values are never serialized")


def date_property(
    name: str,
    value: DateValue,
    extra_params: Optional[dict[str, list[str]]] = None,
    line_no: Optional[int] = None,
) -> Property:
    """Build a property carrying a normalized date value."""
    params = dict(extra_params or {})
    date_params, text = render_date_value(value)
    params.update(date_params)
    return Property(name=name, value=text, params=params, line_no=line_no)


def _normalize_periods(
    prop: Property,
    output_tzid: str,
    registry: TimezoneRegistry,
) -> tuple[Property, list[str]]:
    """Normalize the start, and an explicit end, of each ``start/end`` period."""
    params = {k: v for k, v in prop.params.items() if k != "VALUE"}
    notes: list[str] = []
    periods: list[str] = []

    def anchor(text: str) -> str:
        single = Property(name=prop.name, value=text, params=params, line_no=prop.line_no)
        normalized, element_notes = normalize_with_notes(classify(single), output_tzid, registry)
        if isinstance(normalized, DateOnly):
            raise MalformedPropertyError(prop.name, f"period bound {text!r} is a date", prop.line_no)
        notes.extend(element_notes)
        return render_date_value(normalized)[1]

    for element in prop.value.split(","):
        element = element.strip()
        if not element:
            continue
        start, sep, end = element.partition("/")
        if not sep or not end:
            raise MalformedPropertyError(prop.name, f"invalid period {element!r}", prop.line_no)
        if end.lstrip("+-").upper().startswith("P"):
            periods.append(f"{anchor(start)}/{end}")
        else:
            periods.append(f"{anchor(start)}/{anchor(end)}")

    if not periods:
        raise MalformedPropertyError(prop.name, "empty period list", prop.line_no)
    extra = {k: v for k, v in params.items() if k != "TZID"}
    out_params = {**extra, "VALUE": ["PERIOD"], "TZID": [output_tzid]}
    text = ",".join(periods)
    return Property(name=prop.name, value=text, params=out_params, line_no=prop.line_no), notes


def normalize_multi_value_property(
    prop: Property,
    output_tzid: str,
    registry: TimezoneRegistry,
) -> tuple[Property, list[str]]:
    """Normalize a RECURRENCE-ID, EXDATE or RDATE property element-wise.

    ``RDATE;VALUE=PERIOD`` values keep their durations; period starts and
    explicit ends are re-anchored like any other date-time.

    Raises:
        MalformedPropertyError: if an element is unparseable or the elements
            mix dates and date-times
    """
    if (prop.get_param("VALUE") or "").upper() == "PERIOD":
        return _normalize_periods(prop, output_tzid, registry)

    notes: list[str] = []
    values: list[DateValue] = []
    for element in prop.value.split(","):
        element = element.strip()
        if not element:
            continue
        single = Property(name=prop.name, value=element, params=prop.params, line_no=prop.line_no)
        normalized, element_notes = normalize_with_notes(classify(single), output_tzid, registry)
        values.append(normalized)
        notes.extend(element_notes)

    if not values:
        raise MalformedPropertyError(prop.name, "empty date list", prop.line_no)
    kinds = {type(v) for v in values}
    if len(kinds) > 1:
        raise MalformedPropertyError(prop.name, "mixes dates and date-times", prop.line_no)

    extra = {k: v for k, v in prop.params.items() if k not in ("TZID", "VALUE")}
    params, _ = render_date_value(values[0])
    params = {**extra, **params}
    text = ",".join(render_date_value(v)[1] for v in values)
    return Property(name=prop.name, value=text, params=params, line_no=prop.line_no), notes
