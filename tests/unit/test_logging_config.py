"""Unit tests for ical_merger.logging_config."""

import logging

import pytest

from ical_merger.logging_config import THIRD_PARTY_LEVELS, configure_logging

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def restore_levels():
    """Put logger levels back after each test."""
    names = ["", "ical_merger", *THIRD_PARTY_LEVELS]
    saved = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


class TestConfigureLogging:
    """Tests for level selection."""

    def test_configure_logging_when_default_then_info(self) -> None:
        assert configure_logging() == logging.INFO
        assert logging.getLogger("ical_merger").level == logging.INFO
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_configure_logging_when_debug_mode_then_debug(self) -> None:
        assert configure_logging(debug_mode=True) == logging.DEBUG
        assert logging.getLogger("ical_merger").level == logging.DEBUG

    def test_configure_logging_when_env_debug_then_debug(self, monkeypatch) -> None:
        monkeypatch.setenv("ICAL_MERGER_DEBUG", "yes")
        assert configure_logging() == logging.DEBUG

    def test_configure_logging_when_force_debug_false_then_env_ignored(self, monkeypatch) -> None:
        monkeypatch.setenv("ICAL_MERGER_DEBUG", "1")
        assert configure_logging(force_debug=False) == logging.INFO

    def test_configure_logging_when_env_level_then_applied(self, monkeypatch) -> None:
        monkeypatch.setenv("ICAL_MERGER_LOG_LEVEL", "warning")
        assert configure_logging(debug_mode=True) == logging.WARNING
        assert logging.getLogger("ical_merger").level == logging.WARNING
