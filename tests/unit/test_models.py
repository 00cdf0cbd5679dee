"""Unit tests for ical_merger.models."""

import base64

import pytest
from pydantic import ValidationError

from ical_merger.models import (
    DEFAULT_OUTPUT_PATH,
    DEFAULT_SYNC_INTERVAL_MINUTES,
    AuthType,
    MergerConfig,
    SourceAuth,
    SourceConfig,
)

pytestmark = pytest.mark.unit

CALENDARS = [{"name": "work", "url": "https://example.com/work.ics"}]


class TestSourceAuth:
    """Tests for authentication headers."""

    def test_get_headers_when_basic_then_encoded(self) -> None:
        auth = SourceAuth(type=AuthType.BASIC, username="u", password="p")
        expected = base64.b64encode(b"u:p").decode()
        assert auth.get_headers() == {"Authorization": f"Basic {expected}"}

    def test_get_headers_when_bearer_without_token_then_empty(self) -> None:
        assert SourceAuth(type=AuthType.BEARER).get_headers() == {}

    def test_get_headers_when_none_then_empty(self) -> None:
        assert SourceAuth().get_headers() == {}


class TestMergerConfig:
    """Tests for configuration validation and defaults."""

    def test_model_validate_when_camel_case_keys_then_mapped(self) -> None:
        config = MergerConfig.model_validate(
            {
                "calendars": CALENDARS,
                "outputPath": "/tmp/out.ics",
                "syncIntervalMinutes": 5,
                "outputTimezone": "America/New_York",
                "calendarName": "Team",
            }
        )
        assert config.output_path == "/tmp/out.ics"
        assert config.sync_interval_minutes == 5
        assert config.sync_interval_seconds == 300
        assert config.output_timezone == "America/New_York"
        assert config.calendar_name == "Team"

    def test_model_validate_when_only_calendars_then_defaults(self) -> None:
        config = MergerConfig.model_validate({"calendars": CALENDARS})
        assert config.output_path == DEFAULT_OUTPUT_PATH
        assert config.sync_interval_minutes == DEFAULT_SYNC_INTERVAL_MINUTES
        assert config.output_timezone == "Europe/Berlin"

    @pytest.mark.parametrize("interval", [0, -5, None])
    def test_model_validate_when_interval_not_positive_then_default(self, interval) -> None:
        config = MergerConfig.model_validate({"calendars": CALENDARS, "syncIntervalMinutes": interval})
        assert config.sync_interval_minutes == DEFAULT_SYNC_INTERVAL_MINUTES

    def test_model_validate_when_blank_output_path_then_default(self) -> None:
        config = MergerConfig.model_validate({"calendars": CALENDARS, "outputPath": "  "})
        assert config.output_path == DEFAULT_OUTPUT_PATH

    def test_model_validate_when_output_timezone_env_then_used_as_default(
        self, monkeypatch
    ) -> None:
        monkeypatch.setenv("OUTPUT_TIMEZONE", "Asia/Tokyo")
        assert MergerConfig.model_validate({"calendars": CALENDARS}).output_timezone == "Asia/Tokyo"

    def test_model_validate_when_calendars_missing_then_error(self) -> None:
        with pytest.raises(ValidationError):
            MergerConfig.model_validate({"outputPath": "/tmp/x.ics"})

    def test_model_validate_when_source_without_url_then_error(self) -> None:
        with pytest.raises(ValidationError):
            MergerConfig.model_validate({"calendars": [{"name": "x"}]})

    def test_model_validate_when_unknown_keys_then_ignored(self) -> None:
        config = MergerConfig.model_validate({"calendars": CALENDARS, "legacyOption": True})
        assert not hasattr(config, "legacyOption")

    def test_request_timeout_for_when_source_timeout_smaller_then_used(self) -> None:
        config = MergerConfig.model_validate({"calendars": CALENDARS, "requestTimeout": 30})
        assert config.request_timeout_for(SourceConfig(name="a", url="x", timeout=10)) == 10
        assert config.request_timeout_for(SourceConfig(name="b", url="x")) == 30

    def test_source_deadline_when_no_source_timeout_then_covers_retries(self) -> None:
        config = MergerConfig.model_validate(
            {"calendars": CALENDARS, "requestTimeout": 10, "maxRetries": 2}
        )
        assert config.source_deadline(SourceConfig(name="a", url="x")) == 30
        assert config.source_deadline(SourceConfig(name="b", url="x", timeout=7)) == 7
