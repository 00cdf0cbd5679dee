"""ICS tokenizer and component parser.

Turns raw calendar bytes into ``Property`` records and a ``Component`` tree.
Only structure is handled here; parameter repair and date decoding happen in
later stages so a single malformed property never fails a whole source.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from typing import Union

from .exceptions import ParseError
from .ics_models import Component, Property, SourceCalendar

logger = logging.getLogger(__name__)

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")

# Segments without "=" are collected under this key for the repair unit.
BARE_SEGMENT_KEY = ""


def decode_ics(data: Union[bytes, str]) -> str:
    """Decode raw source bytes to text, dropping a leading BOM."""
    if isinstance(data, bytes):
        text = data.decode("utf-8", errors="replace")
    else:
        text = data
    return text.lstrip("\ufeff")


def unfold_lines(text: str) -> Iterator[tuple[int, str]]:
    """Yield ``(line_no, logical_line)`` pairs with RFC 5545 folding undone.

    A physical line starting with one space or tab continues the previous
    line; the line break and that single whitespace character are removed.
    Blank lines are skipped. ``line_no`` is the 1-based physical row where
    the logical line starts.
    """
    current: list[str] = []
    current_no = 0

    for index, physical in enumerate(_LINE_BREAK_RE.split(text), start=1):
        if physical[:1] in (" ", "\t"):
            if current:
                current.append(physical[1:])
                continue
            # continuation with nothing to continue: treat as a normal line
            physical = physical[1:]

        if current:
            yield current_no, "".join(current)
            current = []

        if not physical.strip():
            continue

        current = [physical]
        current_no = index

    if current:
        yield current_no, "".join(current)


def find_value_separator(line: str, start: int = 0) -> int:
    """Return the index of the first colon outside a quoted parameter value.

    Returns -1 when the line has no such colon.

    Raises:
        ValueError: if a double quote is opened and never closed before the
            end of the line
    """
    in_quote = False
    for index in range(start, len(line)):
        char = line[index]
        if char == '"':
            in_quote = not in_quote
        elif char == ":" and not in_quote:
            return index
    if in_quote:
        raise ValueError("unterminated quoted parameter value")
    return -1


def split_params(section: str) -> list[tuple[str, str]]:
    """Split a parameter section on ``;`` outside quotes into (KEY, value).

    Quotes wrapping a whole value are removed. Segments without ``=``
    (including empty ones) are returned under ``BARE_SEGMENT_KEY`` with the
    raw segment text as value.
    """
    segments: list[str] = []
    buf: list[str] = []
    in_quote = False
    for char in section:
        if char == '"':
            in_quote = not in_quote
            buf.append(char)
        elif char == ";" and not in_quote:
            segments.append("".join(buf))
            buf = []
        else:
            buf.append(char)
    segments.append("".join(buf))

    pairs: list[tuple[str, str]] = []
    for segment in segments:
        if "=" not in segment:
            pairs.append((BARE_SEGMENT_KEY, segment.strip()))
            continue
        key, value = segment.split("=", 1)
        if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
            value = value[1:-1]
        pairs.append((key.strip().upper(), value))
    return pairs


def params_from_pairs(pairs: list[tuple[str, str]]) -> dict[str, list[str]]:
    params: dict[str, list[str]] = {}
    for key, value in pairs:
        params.setdefault(key, []).append(value)
    return params


def parse_property_line(line: str, line_no: int) -> Property:
    """Split one logical line into a ``Property``.

    Raises:
        ParseError: if the line has no value separator or an unterminated
            quoted parameter value
    """
    try:
        colon = find_value_separator(line)
    except ValueError as e:
        raise ParseError(line_no, line, str(e)) from e
    if colon == -1:
        raise ParseError(line_no, line, "missing ':' separator")

    head, value = line[:colon], line[colon + 1 :]
    name, _, param_section = head.partition(";")
    name = name.strip().upper()
    if not name:
        raise ParseError(line_no, line, "empty property name")

    params: dict[str, list[str]] = {}
    if ";" in head:
        params = params_from_pairs(split_params(param_section))

    return Property(name=name, value=value, params=params, line_no=line_no)


def parse_components(data: Union[bytes, str]) -> list[Component]:
    """Parse ICS content into its top-level components.

    Raises:
        ParseError: on an unreadable line, a mismatched ``END`` or a
            component left open at end of input
    """
    text = decode_ics(data)
    roots: list[Component] = []
    stack: list[Component] = []

    for line_no, line in unfold_lines(text):
        prop = parse_property_line(line, line_no)

        if prop.name == "BEGIN":
            component = Component(name=prop.value.strip().upper(), line_no=line_no)
            if stack:
                stack[-1].components.append(component)
            else:
                roots.append(component)
            stack.append(component)
            continue

        if prop.name == "END":
            closing = prop.value.strip().upper()
            if not stack or stack[-1].name != closing:
                expected = stack[-1].name if stack else "nothing"
                raise ParseError(line_no, line, f"END:{closing} while {expected} is open")
            stack.pop()
            continue

        if not stack:
            logger.debug("Ignoring property outside any component at line %d: %s", line_no, prop.name)
            continue
        stack[-1].properties.append(prop)

    if stack:
        open_component = stack[-1]
        raise ParseError(
            open_component.line_no or 0,
            f"BEGIN:{open_component.name}",
            "component not closed before end of input",
        )

    return roots


def parse_calendar(source_name: str, data: Union[bytes, str]) -> SourceCalendar:
    """Parse one source's ICS payload into a ``SourceCalendar``.

    Every VEVENT directly inside any VCALENDAR of the payload is collected in
    document order. Source VTIMEZONE blocks are not kept: every date-time is
    re-anchored to the output timezone later on.

    Raises:
        ParseError: if the payload is unreadable or holds no VCALENDAR
    """
    roots = parse_components(data)
    calendars = [component for component in roots if component.name == "VCALENDAR"]
    if not calendars:
        first_line = next((line for _, line in unfold_lines(decode_ics(data))), "")
        raise ParseError(1, first_line, "no VCALENDAR component found")

    events = [
        sub for calendar in calendars for sub in calendar.components if sub.name == "VEVENT"
    ]
    logger.debug("Parsed %d VEVENT components from source %r", len(events), source_name)
    return SourceCalendar(name=source_name, events=events)
