"""Synthesis of the single VTIMEZONE block declared by the merged calendar.

The transitions of the output zone are discovered from its rule data rather
than hard-coded, so any IANA zone (or a test override) produces a matching
block. Zones with the usual two yearly changes get recurring STANDARD and
DAYLIGHT rules anchored in 1970; anything irregular is spelled out for the
reference year only.
"""

from __future__ import annotations

import calendar
import datetime
import logging
from dataclasses import dataclass
from typing import Optional

from icalendar.prop import vDatetime, vRecur, vUTCOffset

from .date_normalizer import ical_text
from .ics_models import Component, Property
from .timezone_utils import TimezoneRegistry

logger = logging.getLogger(__name__)

_UTC = datetime.timezone.utc
_SCAN_STEP = datetime.timedelta(days=1)
_PRECISION = datetime.timedelta(minutes=1)
_EPOCH_YEAR = 1970
_WEEKDAYS = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")


@dataclass(frozen=True)
class Transition:
    """One UTC offset change of a zone."""

    instant: datetime.datetime
    offset_from: datetime.timedelta
    offset_to: datetime.timedelta
    is_dst: bool
    name: Optional[str]

    @property
    def local_before(self) -> datetime.datetime:
        """Wall-clock time of the change, expressed in the old offset."""
        return (self.instant + self.offset_from).replace(tzinfo=None)


def _offset(tz: datetime.tzinfo, instant: datetime.datetime) -> datetime.timedelta:
    return instant.astimezone(tz).utcoffset() or datetime.timedelta(0)


def find_transitions(tz: datetime.tzinfo, year: int) -> list[Transition]:
    """Return the offset transitions of ``tz`` during ``year``, in order.

    Scans day by day in UTC and bisects each change down to the minute.
    """
    transitions: list[Transition] = []
    lo = datetime.datetime(year, 1, 1, tzinfo=_UTC)
    end = datetime.datetime(year + 1, 1, 1, tzinfo=_UTC)
    lo_offset = _offset(tz, lo)

    while lo < end:
        hi = min(lo + _SCAN_STEP, end)
        hi_offset = _offset(tz, hi)
        if hi_offset != lo_offset:
            left, right = lo, hi
            while right - left > _PRECISION:
                mid = left + (right - left) / 2
                if _offset(tz, mid) == lo_offset:
                    left = mid
                else:
                    right = mid
            right = right.replace(second=0, microsecond=0)
            if _offset(tz, right) == lo_offset:
                right += _PRECISION
            local = right.astimezone(tz)
            transitions.append(
                Transition(
                    instant=right,
                    offset_from=lo_offset,
                    offset_to=hi_offset,
                    is_dst=bool(local.dst()),
                    name=local.tzname(),
                )
            )
        lo, lo_offset = hi, hi_offset

    return transitions


def _weekday_rule(day: datetime.date) -> tuple[int, str]:
    """Return (n, weekday) so that ``day`` is the n-th weekday of its month.

    n is -1 when ``day`` falls in the last seven days of the month.
    """
    month_days = calendar.monthrange(day.year, day.month)[1]
    if day.day + 7 > month_days:
        return -1, _WEEKDAYS[day.weekday()]
    return (day.day - 1) // 7 + 1, _WEEKDAYS[day.weekday()]


def _epoch_date(month: int, nth: int, weekday: str) -> datetime.date:
    """Return the date in 1970 matching the n-th ``weekday`` of ``month``."""
    target = _WEEKDAYS.index(weekday)
    month_days = calendar.monthrange(_EPOCH_YEAR, month)[1]
    if nth == -1:
        day = datetime.date(_EPOCH_YEAR, month, month_days)
        return day - datetime.timedelta(days=(day.weekday() - target) % 7)
    first = datetime.date(_EPOCH_YEAR, month, 1)
    return first + datetime.timedelta(days=(target - first.weekday()) % 7 + 7 * (nth - 1))


def _observance(
    kind: str,
    dtstart: datetime.datetime,
    offset_from: datetime.timedelta,
    offset_to: datetime.timedelta,
    name: Optional[str],
    rrule: Optional[dict] = None,
) -> Component:
    props = [
        Property("DTSTART", ical_text(vDatetime(dtstart))),
        Property("TZOFFSETFROM", ical_text(vUTCOffset(offset_from))),
        Property("TZOFFSETTO", ical_text(vUTCOffset(offset_to))),
    ]
    if name:
        props.append(Property("TZNAME", name))
    if rrule:
        props.append(Property("RRULE", ical_text(vRecur(rrule))))
    return Component(name=kind, properties=props)


def _recurring_observance(transition: Transition) -> Component:
    local = transition.local_before
    nth, weekday = _weekday_rule(local.date())
    anchor = datetime.datetime.combine(_epoch_date(local.month, nth, weekday), local.time())
    return _observance(
        "DAYLIGHT" if transition.is_dst else "STANDARD",
        anchor,
        transition.offset_from,
        transition.offset_to,
        transition.name,
        {"FREQ": "YEARLY", "BYMONTH": local.month, "BYDAY": f"{nth}{weekday}"},
    )


def build_vtimezone(tzid: str, registry: TimezoneRegistry, reference_year: int) -> Component:
    """Build the VTIMEZONE component for ``tzid``.

    Args:
        tzid: Output timezone identifier, emitted verbatim as TZID
        registry: Timezone rule provider
        reference_year: Year whose transitions define the block

    Returns:
        A VTIMEZONE component with STANDARD/DAYLIGHT sub-components

    Raises:
        UnknownTimezoneError: if ``tzid`` cannot be resolved
    """
    tz = registry.resolve(tzid)
    transitions = find_transitions(tz, reference_year)
    vtimezone = Component(name="VTIMEZONE", properties=[Property("TZID", tzid)])

    if not transitions:
        start = datetime.datetime(reference_year, 1, 1, tzinfo=_UTC).astimezone(tz)
        offset = start.utcoffset() or datetime.timedelta(0)
        vtimezone.components.append(
            _observance(
                "STANDARD",
                datetime.datetime(_EPOCH_YEAR, 1, 1),
                offset,
                offset,
                start.tzname(),
            )
        )
        return vtimezone

    regular = len(transitions) == 2 and transitions[0].is_dst != transitions[1].is_dst
    if regular:
        # STANDARD first, then DAYLIGHT
        for transition in sorted(transitions, key=lambda t: t.is_dst):
            vtimezone.components.append(_recurring_observance(transition))
        return vtimezone

    logger.debug(
        "Timezone %s has %d transitions in %d, emitting dated observances",
        tzid,
        len(transitions),
        reference_year,
    )
    first = transitions[0]
    before = datetime.datetime(reference_year, 1, 1, tzinfo=_UTC).astimezone(tz)
    vtimezone.components.append(
        _observance(
            "DAYLIGHT" if before.dst() else "STANDARD",
            datetime.datetime(_EPOCH_YEAR, 1, 1),
            first.offset_from,
            first.offset_from,
            before.tzname(),
        )
    )
    for transition in transitions:
        vtimezone.components.append(
            _observance(
                "DAYLIGHT" if transition.is_dst else "STANDARD",
                transition.local_before,
                transition.offset_from,
                transition.offset_to,
                transition.name,
            )
        )
    return vtimezone
