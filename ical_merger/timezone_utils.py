"""Timezone rule lookup and clock utilities for ical_merger."""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo
from collections.abc import Mapping
from typing import ClassVar, Optional

from .exceptions import UnknownTimezoneError

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_TIMEZONE = "Europe/Berlin"

TEST_TIME_ENV = "ICAL_MERGER_TEST_TIME"


class TimezoneRegistry:
    """Resolves TZID strings to tzinfo rule data.

    Resolved zones are cached on first use and never evicted; the cache is the
    only process-wide state of a merge run and is read-only once filled.
    ``overrides`` lets tests pin fixed rules for a tzid.
    """

    # Windows timezone names to IANA identifier mapping
    # Outlook/Exchange feeds put these in TZID parameters
    WINDOWS_TZ_MAP: ClassVar[dict[str, str]] = {
        "Pacific Standard Time": "America/Los_Angeles",
        "Mountain Standard Time": "America/Denver",
        "Central Standard Time": "America/Chicago",
        "Eastern Standard Time": "America/New_York",
        "Alaskan Standard Time": "America/Anchorage",
        "Hawaiian Standard Time": "Pacific/Honolulu",
        "Arizona Standard Time": "America/Phoenix",
        "UTC": "UTC",
        "GMT Standard Time": "Europe/London",
        "Greenwich Standard Time": "Atlantic/Reykjavik",
        "W. Europe Standard Time": "Europe/Berlin",
        "Central Europe Standard Time": "Europe/Budapest",
        "Central European Standard Time": "Europe/Warsaw",
        "Romance Standard Time": "Europe/Paris",
        "E. Europe Standard Time": "Europe/Chisinau",
        "FLE Standard Time": "Europe/Kiev",
        "GTB Standard Time": "Europe/Bucharest",
        "Russian Standard Time": "Europe/Moscow",
        "China Standard Time": "Asia/Shanghai",
        "Tokyo Standard Time": "Asia/Tokyo",
        "India Standard Time": "Asia/Kolkata",
        "Singapore Standard Time": "Asia/Singapore",
        "AUS Eastern Standard Time": "Australia/Sydney",
        "New Zealand Standard Time": "Pacific/Auckland",
    }

    def __init__(self, overrides: Optional[Mapping[str, datetime.tzinfo]] = None):
        """Initialize the registry.

        Args:
            overrides: Fixed tzinfo objects served for the given tzids before
                any system rule lookup
        """
        self.overrides: dict[str, datetime.tzinfo] = dict(overrides or {})
        self._cache: dict[str, datetime.tzinfo] = {}

    def resolve(self, tzid: str) -> datetime.tzinfo:
        """Return tzinfo for ``tzid``.

        Lookup order: overrides, IANA database, Windows name mapping.

        Raises:
            UnknownTimezoneError: if no rule data exists for ``tzid``
        """
        key = tzid.strip().strip('"')
        if key in self.overrides:
            return self.overrides[key]
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        tz = self._load(key)
        if tz is None:
            raise UnknownTimezoneError(tzid)
        self._cache[key] = tz
        return tz

    def is_known(self, tzid: str) -> bool:
        try:
            self.resolve(tzid)
        except UnknownTimezoneError:
            return False
        return True

    def _load(self, key: str) -> Optional[datetime.tzinfo]:
        candidates = [key]
        iana = windows_tz_to_iana(key)
        if iana:
            candidates.append(iana)
        # e.g. "/mozilla.org/20050126_1/Europe/Berlin"
        if key.startswith("/"):
            parts = key.strip("/").split("/")
            candidates.append("/".join(parts[-2:]))
            candidates.append(parts[-1])

        for candidate in candidates:
            if not candidate:
                continue
            try:
                tz = zoneinfo.ZoneInfo(candidate)
            except (zoneinfo.ZoneInfoNotFoundError, ValueError):
                continue
            if candidate != key:
                logger.debug("Mapped timezone %r to %r", key, candidate)
            return tz
        return None


class TimeProvider:
    """Provides current time with test time override support."""

    def now_utc(self) -> datetime.datetime:
        """Return current UTC time with tzinfo.

        Can be overridden for testing via the ICAL_MERGER_TEST_TIME environment
        variable (ISO 8601, e.g. "2025-03-30T08:00:00+02:00"). A naive value is
        taken as UTC.
        """
        test_time = os.environ.get(TEST_TIME_ENV)
        if test_time:
            try:
                from dateutil import parser as date_parser

                dt = date_parser.isoparse(test_time)
                if dt.tzinfo is not None:
                    return dt.astimezone(datetime.timezone.utc)
                return dt.replace(tzinfo=datetime.timezone.utc)
            except ValueError as e:
                logger.warning("Failed to parse %s=%r: %s", TEST_TIME_ENV, test_time, e)

        return datetime.datetime.now(datetime.timezone.utc)


_time_provider = TimeProvider()


def now_utc() -> datetime.datetime:
    """Get current UTC time (convenience function)."""
    return _time_provider.now_utc()


def windows_tz_to_iana(windows_tz: str) -> str | None:
    """Convert Windows timezone name to IANA timezone identifier.

    Args:
        windows_tz: Windows timezone name (e.g., "W. Europe Standard Time")

    Returns:
        IANA timezone identifier (e.g., "Europe/Berlin") or None if not found
    """
    return TimezoneRegistry.WINDOWS_TZ_MAP.get(windows_tz)
