"""Unit tests for ical_merger.vtimezone."""

from datetime import datetime, timedelta, timezone

import pytest

from ical_merger.exceptions import UnknownTimezoneError
from ical_merger.timezone_utils import TimezoneRegistry
from ical_merger.vtimezone import build_vtimezone, find_transitions

pytestmark = pytest.mark.unit


def values(component) -> dict[str, str]:
    return {prop.name: prop.value for prop in component.properties}


def without_rrule(component) -> dict[str, str]:
    return {k: v for k, v in values(component).items() if k != "RRULE"}


def rule(component) -> dict[str, str]:
    """Split the RRULE of an observance into its parts."""
    return dict(part.split("=", 1) for part in values(component)["RRULE"].split(";"))


class TestFindTransitions:
    """Tests for discovering offset changes from rule data."""

    def test_find_transitions_when_berlin_2025_then_march_and_october(
        self, registry: TimezoneRegistry
    ) -> None:
        transitions = find_transitions(registry.resolve("Europe/Berlin"), 2025)
        assert [t.instant for t in transitions] == [
            datetime(2025, 3, 30, 1, 0, tzinfo=timezone.utc),
            datetime(2025, 10, 26, 1, 0, tzinfo=timezone.utc),
        ]
        spring, autumn = transitions
        assert spring.is_dst is True
        assert spring.offset_from == timedelta(hours=1)
        assert spring.offset_to == timedelta(hours=2)
        assert spring.local_before == datetime(2025, 3, 30, 2, 0)
        assert autumn.is_dst is False
        assert autumn.local_before == datetime(2025, 10, 26, 3, 0)

    def test_find_transitions_when_fixed_offset_then_empty(self) -> None:
        assert find_transitions(timezone(timedelta(hours=3)), 2025) == []


class TestBuildVtimezone:
    """Tests for the VTIMEZONE block of the merged calendar."""

    def test_build_vtimezone_when_berlin_then_recurring_rules(
        self, registry: TimezoneRegistry
    ) -> None:
        """Berlin gets the classic last-Sunday rules anchored in 1970."""
        vtimezone = build_vtimezone("Europe/Berlin", registry, 2025)
        assert values(vtimezone) == {"TZID": "Europe/Berlin"}
        standard, daylight = vtimezone.components

        assert standard.name == "STANDARD"
        assert without_rrule(standard) == {
            "DTSTART": "19701025T030000",
            "TZOFFSETFROM": "+0200",
            "TZOFFSETTO": "+0100",
            "TZNAME": "CET",
        }
        assert rule(standard) == {"FREQ": "YEARLY", "BYMONTH": "10", "BYDAY": "-1SU"}
        assert daylight.name == "DAYLIGHT"
        assert without_rrule(daylight) == {
            "DTSTART": "19700329T020000",
            "TZOFFSETFROM": "+0100",
            "TZOFFSETTO": "+0200",
            "TZNAME": "CEST",
        }
        assert rule(daylight) == {"FREQ": "YEARLY", "BYMONTH": "3", "BYDAY": "-1SU"}

    def test_build_vtimezone_when_new_york_then_nth_sunday_rules(
        self, registry: TimezoneRegistry
    ) -> None:
        """US rules use the second Sunday of March and first Sunday of November."""
        standard, daylight = build_vtimezone("America/New_York", registry, 2025).components
        assert rule(standard) == {"FREQ": "YEARLY", "BYMONTH": "11", "BYDAY": "1SU"}
        assert rule(daylight) == {"FREQ": "YEARLY", "BYMONTH": "3", "BYDAY": "2SU"}
        assert values(daylight)["DTSTART"] == "19700308T020000"

    def test_build_vtimezone_when_utc_then_single_standard(
        self, registry: TimezoneRegistry
    ) -> None:
        vtimezone = build_vtimezone("UTC", registry, 2025)
        assert [c.name for c in vtimezone.components] == ["STANDARD"]
        standard = values(vtimezone.components[0])
        assert standard["DTSTART"] == "19700101T000000"
        assert standard["TZOFFSETFROM"] == standard["TZOFFSETTO"] == "+0000"
        assert "RRULE" not in standard

    def test_build_vtimezone_when_override_then_tzid_kept_verbatim(self) -> None:
        """A pinned fixed-offset rule still emits the configured TZID."""
        registry = TimezoneRegistry(
            overrides={"Office/Local": timezone(timedelta(hours=-3, minutes=-30), "OLT")}
        )
        vtimezone = build_vtimezone("Office/Local", registry, 2025)
        assert values(vtimezone) == {"TZID": "Office/Local"}
        standard = values(vtimezone.components[0])
        assert standard["TZOFFSETTO"] == "-0330"
        assert standard["TZNAME"] == "OLT"

    def test_build_vtimezone_when_unknown_then_raises(self, registry: TimezoneRegistry) -> None:
        with pytest.raises(UnknownTimezoneError):
            build_vtimezone("Nowhere/Special", registry, 2025)
