"""In-memory records for calendar content flowing through a merge cycle.

Property and Component mirror the ICS text structure. DateValue is a closed
sum of four variants; after normalization only ``DateOnly`` and ``Zoned``
remain. Event, SourceCalendar and MergedCalendar are owned by a single merge
cycle and never shared between cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Union


@dataclass
class Property:
    """One content line: ``NAME;KEY=v;KEY=v:value``.

    ``params`` maps upper-cased parameter names to every value seen for that
    name, in order. Well-formed input has exactly one value per key.
    """

    name: str
    value: str
    params: dict[str, list[str]] = field(default_factory=dict)
    line_no: Optional[int] = None

    def get_param(self, key: str) -> Optional[str]:
        """Return the last value of parameter ``key`` or None."""
        values = self.params.get(key.upper())
        if not values:
            return None
        return values[-1]


@dataclass
class Component:
    """A ``BEGIN:NAME`` ... ``END:NAME`` block."""

    name: str
    properties: list[Property] = field(default_factory=list)
    components: list[Component] = field(default_factory=list)
    line_no: Optional[int] = None

    def get(self, name: str) -> Optional[Property]:
        """Return the first property called ``name``."""
        name = name.upper()
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None

    def walk(self, name: str) -> list[Component]:
        """Return this component and all descendants called ``name``."""
        found = [self] if self.name == name.upper() else []
        for sub in self.components:
            found.extend(sub.walk(name))
        return found


@dataclass(frozen=True)
class DateOnly:
    """Whole-day boundary; serializes with ``VALUE=DATE``."""

    date: date


@dataclass(frozen=True)
class Floating:
    """Wall-clock time with no timezone anchor."""

    local: datetime


@dataclass(frozen=True)
class Zoned:
    """Wall-clock time anchored to a named timezone."""

    local: datetime
    tzid: str


@dataclass(frozen=True)
class UtcInstant:
    """An absolute instant given with a trailing ``Z``."""

    instant: datetime


DateValue = Union[DateOnly, Floating, Zoned, UtcInstant]


@dataclass
class Event:
    """A normalized VEVENT ready for merging and serialization."""

    uid: str
    summary: str
    dtstart: DateValue
    dtend: Optional[DateValue] = None
    properties: list[Property] = field(default_factory=list)
    source_name: str = ""

    @property
    def is_all_day(self) -> bool:
        return isinstance(self.dtstart, DateOnly)


@dataclass
class SourceCalendar:
    """Raw VEVENT components parsed from one source."""

    name: str
    events: list[Component] = field(default_factory=list)


@dataclass
class MergedCalendar:
    """The single artifact serialized at the end of a merge cycle."""

    events: list[Event]
    output_timezone: str
    vtimezone: Component
    generated_at: datetime
    calendar_name: str = "Merged Calendar"
