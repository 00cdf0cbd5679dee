"""Shared fixtures for ical_merger tests."""

from collections.abc import Generator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import pytest

from ical_merger.models import MergerConfig
from ical_merger.timezone_utils import TimezoneRegistry

_ENV_VARS = (
    "ICAL_MERGER_TEST_TIME",
    "ICAL_MERGER_DEBUG",
    "ICAL_MERGER_LOG_LEVEL",
    "ICAL_MERGER_OUTPUT_PATH",
    "ICAL_MERGER_WEB_HOST",
    "ICAL_MERGER_WEB_PORT",
    "OUTPUT_TIMEZONE",
    "CONFIG_PATH",
)

CRLF = "\r\n"


def pytest_configure(config: Any) -> None:
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Tests spanning several modules")


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear ical_merger environment variables before and after each test.

    Configuration defaults and the clock read the environment, so a value
    left behind by one test would leak into the next.
    """
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def registry() -> TimezoneRegistry:
    """Return a fresh timezone registry."""
    return TimezoneRegistry()


@pytest.fixture
def fixed_now() -> datetime:
    """Deterministic generation time used for DTSTAMP and the VTIMEZONE year."""
    return datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def ics_document(*events: str, extra: str = "") -> str:
    """Wrap VEVENT bodies into a minimal VCALENDAR with CRLF line endings.

    Each event argument holds the property lines between BEGIN:VEVENT and
    END:VEVENT, separated by newlines.
    """
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//Test//Test//EN"]
    if extra:
        lines.extend(extra.strip().splitlines())
    for body in events:
        lines.append("BEGIN:VEVENT")
        lines.extend(line.strip() for line in body.strip().splitlines())
        lines.append("END:VEVENT")
    lines.append("END:VCALENDAR")
    return CRLF.join(lines) + CRLF


@pytest.fixture
def write_ics(tmp_path: Path) -> Callable[..., Path]:
    """Write an ICS document built from VEVENT bodies to ``tmp_path``."""

    def _write(name: str, *events: str, extra: str = "") -> Path:
        path = tmp_path / f"{name}.ics"
        path.write_bytes(ics_document(*events, extra=extra).encode("utf-8"))
        return path

    return _write


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., MergerConfig]:
    """Build a MergerConfig writing to ``tmp_path/out/merged.ics``."""

    def _make(calendars: list[dict[str, Any]], **overrides: Any) -> MergerConfig:
        data: dict[str, Any] = {
            "calendars": calendars,
            "output_path": str(tmp_path / "out" / "merged.ics"),
            "output_timezone": "Europe/Berlin",
            "max_retries": 0,
        }
        data.update(overrides)
        return MergerConfig.model_validate(data)

    return _make


@pytest.fixture
def build_ics() -> Callable[..., str]:
    """Return the ICS document builder."""
    return ics_document
