"""Configuration and fetch data models for ical_merger."""

import base64
import os
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from .timezone_utils import DEFAULT_OUTPUT_TIMEZONE
from .timezone_utils import now_utc as _now_utc

DEFAULT_OUTPUT_PATH = "/app/output/merged.ics"
DEFAULT_SYNC_INTERVAL_MINUTES = 15
DEFAULT_CALENDAR_NAME = "Merged Calendar"


class AuthType(str, Enum):
    """Supported authentication types for calendar sources."""

    NONE = "none"
    BASIC = "basic"
    BEARER = "bearer"


class SourceAuth(BaseModel):
    """Authentication configuration for a calendar source."""

    type: AuthType = AuthType.NONE
    username: Optional[str] = None
    password: Optional[str] = None
    bearer_token: Optional[str] = None

    def get_headers(self) -> dict[str, str]:
        """Get HTTP headers for authentication."""
        headers = {}

        if self.type == AuthType.BASIC and self.username and self.password:
            credentials = f"{self.username}:{self.password}"
            encoded = base64.b64encode(credentials.encode()).decode()
            headers["Authorization"] = f"Basic {encoded}"

        elif self.type == AuthType.BEARER and self.bearer_token:
            headers["Authorization"] = f"Bearer {self.bearer_token}"

        return headers


class SourceConfig(BaseModel):
    """One configured calendar source."""

    name: str = Field(..., min_length=1, description="Human-readable name for this source")
    url: str = Field(..., min_length=1, description="http(s):// or file:// URL, or a local path")
    prefix: Optional[str] = Field(default=None, description="Text prepended to every SUMMARY")
    timeout: Optional[float] = Field(
        default=None, gt=0, description="Per-source fetch timeout in seconds"
    )
    auth: SourceAuth = Field(default_factory=SourceAuth, description="Authentication configuration")
    custom_headers: dict[str, str] = Field(default_factory=dict, description="Custom HTTP headers")

    model_config = ConfigDict(populate_by_name=True)


def _default_output_timezone() -> str:
    return os.environ.get("OUTPUT_TIMEZONE") or DEFAULT_OUTPUT_TIMEZONE


class MergerConfig(BaseModel):
    """Validated application configuration.

    Accepts both snake_case keys and the camelCase keys of the JSON config
    format (``outputPath``, ``syncIntervalMinutes``, ...).
    """

    calendars: list[SourceConfig]
    output_path: str = Field(default=DEFAULT_OUTPUT_PATH, alias="outputPath")
    sync_interval_minutes: int = Field(
        default=DEFAULT_SYNC_INTERVAL_MINUTES, alias="syncIntervalMinutes"
    )
    output_timezone: str = Field(default_factory=_default_output_timezone, alias="outputTimezone")
    calendar_name: str = Field(default=DEFAULT_CALENDAR_NAME, alias="calendarName")

    fetch_concurrency: int = Field(default=4, ge=1, alias="fetchConcurrency")
    cycle_timeout_seconds: float = Field(default=120, gt=0, alias="cycleTimeoutSeconds")
    request_timeout: float = Field(default=30, gt=0, alias="requestTimeout")
    max_retries: int = Field(default=3, ge=0, alias="maxRetries")
    retry_backoff_factor: float = Field(default=1.5, ge=0, alias="retryBackoffFactor")

    server_bind: str = Field(default="0.0.0.0", alias="serverBind")  # nosec B104
    server_port: int = Field(default=8080, ge=1, le=65535, alias="serverPort")
    debug_logging: bool = Field(default=False, alias="debugLogging")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("sync_interval_minutes", mode="before")
    @classmethod
    def _fallback_interval(cls, value: object) -> object:
        if value is None:
            return DEFAULT_SYNC_INTERVAL_MINUTES
        try:
            minutes = int(value)
        except (TypeError, ValueError):
            return value
        return minutes if minutes > 0 else DEFAULT_SYNC_INTERVAL_MINUTES

    @field_validator("output_path", "output_timezone", mode="before")
    @classmethod
    def _blank_means_default(cls, value: object, info: ValidationInfo) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            if info.field_name == "output_path":
                return DEFAULT_OUTPUT_PATH
            return _default_output_timezone()
        return value

    @property
    def sync_interval_seconds(self) -> int:
        return self.sync_interval_minutes * 60

    def request_timeout_for(self, source: SourceConfig) -> float:
        """Return the timeout of a single HTTP request to ``source``."""
        if source.timeout:
            return min(source.timeout, self.request_timeout)
        return self.request_timeout

    def source_deadline(self, source: SourceConfig) -> float:
        """Return the total time ``source`` may take, retries included."""
        if source.timeout:
            return source.timeout
        return self.request_timeout * (self.max_retries + 1)


class FetchResponse(BaseModel):
    """Raw payload retrieved for one source."""

    source_name: str
    content: bytes
    status_code: Optional[int] = None
    headers: dict[str, str] = Field(default_factory=dict)
    fetch_time: datetime = Field(default_factory=_now_utc)

    @property
    def content_length(self) -> int:
        return len(self.content)
