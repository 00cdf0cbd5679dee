"""Unit tests for ical_merger.ics_parser."""

import pytest

from ical_merger.exceptions import ParseError
from ical_merger.ics_parser import (
    BARE_SEGMENT_KEY,
    decode_ics,
    find_value_separator,
    parse_calendar,
    parse_components,
    parse_property_line,
    split_params,
    unfold_lines,
)

pytestmark = pytest.mark.unit


class TestUnfoldLines:
    """Tests for RFC 5545 line unfolding."""

    def test_unfold_lines_when_continuation_with_space_then_joined(self) -> None:
        """A leading space continues the previous line and is removed."""
        text = "SUMMARY:Team\r\n  meeting\r\nUID:1\r\n"
        assert list(unfold_lines(text)) == [(1, "SUMMARY:Team meeting"), (3, "UID:1")]

    def test_unfold_lines_when_continuation_with_tab_then_joined(self) -> None:
        """A leading tab is a continuation marker too."""
        text = "DESCRIPTION:abc\n\tdef\n"
        assert list(unfold_lines(text)) == [(1, "DESCRIPTION:abcdef")]

    def test_unfold_lines_when_mixed_line_endings_then_all_split(self) -> None:
        """LF, CR and CRLF line breaks are all accepted."""
        text = "A:1\nB:2\rC:3\r\nD:4"
        assert [line for _, line in unfold_lines(text)] == ["A:1", "B:2", "C:3", "D:4"]

    def test_unfold_lines_when_blank_lines_then_skipped(self) -> None:
        """Blank lines are ignored but keep physical row numbering."""
        text = "A:1\r\n\r\n\r\nB:2\r\n"
        assert list(unfold_lines(text)) == [(1, "A:1"), (4, "B:2")]

    def test_decode_ics_when_bom_present_then_stripped(self) -> None:
        """A UTF-8 byte order mark is dropped."""
        assert decode_ics("\ufeffBEGIN:VCALENDAR".encode("utf-8")) == "BEGIN:VCALENDAR"


class TestPropertyLine:
    """Tests for splitting a content line into name, parameters and value."""

    def test_parse_property_line_when_params_then_upper_cased_keys(self) -> None:
        """Parameter names are upper-cased, values kept verbatim."""
        prop = parse_property_line("dtstart;tzid=Europe/Berlin:20250101T100000", 7)
        assert prop.name == "DTSTART"
        assert prop.params == {"TZID": ["Europe/Berlin"]}
        assert prop.value == "20250101T100000"
        assert prop.line_no == 7

    def test_parse_property_line_when_quoted_param_has_colon_then_value_after_quote(self) -> None:
        """A colon inside a quoted parameter value is not the separator."""
        prop = parse_property_line('ATTENDEE;CN="Doe: Jane":mailto:jane@example.com', 1)
        assert prop.get_param("CN") == "Doe: Jane"
        assert prop.value == "mailto:jane@example.com"

    def test_parse_property_line_when_value_contains_colons_then_kept(self) -> None:
        """Only the first unquoted colon separates the value."""
        prop = parse_property_line("URL:https://example.com:8443/x", 1)
        assert prop.value == "https://example.com:8443/x"

    def test_parse_property_line_when_no_colon_then_raises(self) -> None:
        """A line without a value separator is a parse error with its row."""
        with pytest.raises(ParseError) as exc_info:
            parse_property_line("SUMMARY no colon", 12)
        assert exc_info.value.line_no == 12
        assert exc_info.value.line == "SUMMARY no colon"

    def test_parse_property_line_when_unterminated_quote_then_raises(self) -> None:
        """An unclosed quote never finds a separator."""
        with pytest.raises(ParseError):
            parse_property_line('ATTENDEE;CN="Jane:mailto:x', 3)

    def test_parse_property_line_when_repeated_key_then_all_values_kept(self) -> None:
        """Repeated parameters are kept in order for the repair stage."""
        prop = parse_property_line("DTEND;TZID=A;TZID=B:20250101T100000", 1)
        assert prop.params["TZID"] == ["A", "B"]
        assert prop.get_param("TZID") == "B"

    def test_split_params_when_segment_without_equals_then_bare_key(self) -> None:
        """Segments lacking '=' are reported under the bare segment key."""
        assert split_params("TZID=X;;junk") == [
            ("TZID", "X"),
            (BARE_SEGMENT_KEY, ""),
            (BARE_SEGMENT_KEY, "junk"),
        ]

    def test_find_value_separator_when_no_colon_then_minus_one(self) -> None:
        assert find_value_separator("NAME;X=1") == -1


class TestParseComponents:
    """Tests for the component tree."""

    def test_parse_components_when_nested_then_tree_built(self, build_ics) -> None:
        """VALARM nests inside VEVENT inside VCALENDAR."""
        text = build_ics(
            "UID:1\nDTSTART:20250101T100000\nBEGIN:VALARM\nACTION:DISPLAY\nEND:VALARM"
        )
        roots = parse_components(text)
        assert [c.name for c in roots] == ["VCALENDAR"]
        event = roots[0].components[0]
        assert event.name == "VEVENT"
        assert event.get("UID").value == "1"
        assert [c.name for c in event.components] == ["VALARM"]
        assert len(roots[0].walk("VALARM")) == 1

    def test_parse_components_when_mismatched_end_then_raises(self) -> None:
        """END must close the innermost open component."""
        text = "BEGIN:VCALENDAR\r\nBEGIN:VEVENT\r\nEND:VCALENDAR\r\n"
        with pytest.raises(ParseError) as exc_info:
            parse_components(text)
        assert exc_info.value.line_no == 3

    def test_parse_components_when_unclosed_then_raises(self) -> None:
        """A component still open at end of input is a parse error."""
        with pytest.raises(ParseError):
            parse_components("BEGIN:VCALENDAR\r\nVERSION:2.0\r\n")


class TestParseCalendar:
    """Tests for collecting VEVENTs from a source payload."""

    def test_parse_calendar_when_events_then_document_order(self, build_ics) -> None:
        """Every VEVENT is collected in document order."""
        text = build_ics("UID:a\nDTSTART:20250101", "UID:b\nDTSTART:20250102")
        calendar = parse_calendar("work", text.encode("utf-8"))
        assert calendar.name == "work"
        assert [e.get("UID").value for e in calendar.events] == ["a", "b"]

    def test_parse_calendar_when_vtimezone_present_then_not_collected(self, build_ics) -> None:
        """Source VTIMEZONE blocks are discarded."""
        extra = "BEGIN:VTIMEZONE\nTZID:Europe/Berlin\nEND:VTIMEZONE"
        calendar = parse_calendar("work", build_ics("UID:a\nDTSTART:20250101", extra=extra))
        assert len(calendar.events) == 1

    def test_parse_calendar_when_no_vcalendar_then_raises(self) -> None:
        """HTML error pages and other non-calendar payloads are rejected."""
        with pytest.raises(ParseError):
            parse_calendar("broken", b"<html>nope</html>")

    def test_parse_calendar_when_empty_calendar_then_no_events(self, build_ics) -> None:
        assert parse_calendar("empty", build_ics()).events == []
