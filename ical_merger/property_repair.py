"""Repair of malformed parameter sections emitted by non-conformant producers.

Some producers concatenate two encodings of the same property on one line,
for example::

    DTEND;TZID=Europe/Berlin:;TZID=Europe/Berlin:20250101T130000

The first colon closes an empty value, which is immediately followed by a
second parameter section. The repair keeps the last occurrence of every
parameter key and takes the value after the final colon of the chain.

A value that merely starts with ``;KEY=`` is only treated as a chained
section when that section repeats a parameter the property already carries,
or when the property is date valued (its real value can never start with a
semicolon). Free text such as ``DESCRIPTION:;jsessionid=abc:see notes`` is
left alone. Anything that does not reduce to a single unambiguous value per
key raises ``MalformedPropertyError`` instead of being guessed at.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from .exceptions import MalformedPropertyError
from .ics_models import Property
from .ics_parser import BARE_SEGMENT_KEY, find_value_separator, split_params

logger = logging.getLogger(__name__)

# A value that opens with ";KEY=" is a concatenated parameter section.
_CHAINED_SECTION_RE = re.compile(r"^;[A-Za-z0-9-]+=")

_DATE_VALUED_PROPERTIES = frozenset(
    {"DTSTART", "DTEND", "DUE", "RECURRENCE-ID", "EXDATE", "RDATE"}
)


@dataclass
class RepairResult:
    """Outcome of repairing one property."""

    property: Property
    repaired: bool = False
    notes: list[str] = field(default_factory=list)


def _opens_chain(prop: Property) -> bool:
    """Whether the value of ``prop`` starts with a concatenated section."""
    if not _CHAINED_SECTION_RE.match(prop.value):
        return False
    if prop.name in _DATE_VALUED_PROPERTIES:
        return True
    rest = prop.value[1:]
    try:
        colon = find_value_separator(rest)
    except ValueError:
        return False
    if colon == -1:
        return False
    keys = {key for key, _ in split_params(rest[:colon])}
    return bool(keys & set(prop.params))


def _unchain(prop: Property) -> tuple[list[tuple[str, str]], str, int]:
    """Fold any concatenated parameter sections of ``prop`` into one list.

    Returns the flat (KEY, value) pairs, the final value and the number of
    chained sections found.
    """
    pairs = [(key, value) for key, values in prop.params.items() for value in values]
    value = prop.value
    chained = 0
    if not _opens_chain(prop):
        return pairs, value, chained

    while _CHAINED_SECTION_RE.match(value):
        rest = value[1:]
        try:
            colon = find_value_separator(rest)
        except ValueError as e:
            raise MalformedPropertyError(prop.name, str(e), prop.line_no) from e
        if colon == -1:
            raise MalformedPropertyError(
                prop.name, "concatenated parameter section without a value", prop.line_no
            )
        pairs.extend(split_params(rest[:colon]))
        value = rest[colon + 1 :]
        chained += 1

    return pairs, value, chained


def repair_property(prop: Property) -> RepairResult:
    """Return ``prop`` with one value per parameter key.

    Raises:
        MalformedPropertyError: if a key carries more than one distinct
            non-empty value, or a parameter segment lacks ``=``
    """
    pairs, value, chained = _unchain(prop)
    notes: list[str] = []
    if chained:
        notes.append(f"merged {chained} concatenated parameter section(s)")

    grouped: dict[str, list[str]] = {}
    for key, param_value in pairs:
        grouped.setdefault(key, []).append(param_value)

    bare = grouped.pop(BARE_SEGMENT_KEY, [])
    stray = [segment for segment in bare if segment]
    if stray:
        raise MalformedPropertyError(
            prop.name, f"parameter segment without '=': {stray[0]!r}", prop.line_no
        )
    if bare:
        notes.append(f"dropped {len(bare)} empty parameter segment(s)")

    params: dict[str, list[str]] = {}
    for key, values in grouped.items():
        if len(values) == 1:
            params[key] = values
            continue
        distinct = {v for v in values if v}
        if len(distinct) > 1:
            raise MalformedPropertyError(
                prop.name,
                f"conflicting values for parameter {key}: {sorted(distinct)}",
                prop.line_no,
            )
        kept = next((v for v in reversed(values) if v), values[-1])
        params[key] = [kept]
        notes.append(f"collapsed {len(values)} occurrences of {key}")

    repaired = bool(notes)
    fixed = Property(name=prop.name, value=value, params=params, line_no=prop.line_no)
    if repaired:
        logger.debug("Repaired %s at line %s: %s", prop.name, prop.line_no, "; ".join(notes))
    return RepairResult(property=fixed, repaired=repaired, notes=notes)
