"""Exception hierarchy for ical_merger.

Each exception carries the scope it applies to:

- ``ParseError`` and ``FetchError`` are source-scoped: the offending source
  contributes zero events and the merge cycle continues.
- ``MalformedPropertyError`` is event-scoped: only the owning event is dropped.
- ``UnknownTimezoneError`` is cycle-fatal: nothing is written for the cycle.
- ``ConfigError`` is raised at startup for invalid configuration.
"""

from typing import Optional


class ICalMergerError(Exception):
    """Base exception for all ical_merger errors."""


class ConfigError(ICalMergerError):
    """Configuration file missing, unreadable or invalid."""


class ParseError(ICalMergerError):
    """A source calendar line or component structure could not be read.

    Carries the 1-based row number and the offending logical line so the log
    entry points straight at the bad input.
    """

    def __init__(self, line_no: int, line: str, reason: str) -> None:
        super().__init__(f"line {line_no}: {reason}: {line!r}")
        self.line_no = line_no
        self.line = line
        self.reason = reason


class MalformedPropertyError(ICalMergerError):
    """A property could not be repaired or decoded unambiguously."""

    def __init__(self, name: str, reason: str, line_no: Optional[int] = None) -> None:
        where = f" (line {line_no})" if line_no is not None else ""
        super().__init__(f"{name}{where}: {reason}")
        self.name = name
        self.reason = reason
        self.line_no = line_no


class UnknownTimezoneError(ICalMergerError):
    """A timezone identifier could not be resolved to rule data."""

    def __init__(self, tzid: str) -> None:
        super().__init__(f"Unknown timezone: {tzid!r}")
        self.tzid = tzid


class FetchError(ICalMergerError):
    """Base exception for source retrieval errors."""


class FetchAuthError(FetchError):
    """Authentication error during fetch."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FetchNetworkError(FetchError):
    """Network error during fetch."""


class FetchTimeoutError(FetchError):
    """Timeout during fetch."""
