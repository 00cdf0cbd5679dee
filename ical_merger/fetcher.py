"""Retrieval of raw ICS payloads from http(s) URLs and local files."""

import asyncio
import logging
import random
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

import httpx

from . import __version__
from .exceptions import FetchAuthError, FetchError, FetchNetworkError, FetchTimeoutError
from .models import FetchResponse, MergerConfig, SourceConfig

logger = logging.getLogger(__name__)

# Backoff calculation constants
MAX_BACKOFF_SECONDS = 30.0
JITTER_MIN_FACTOR = 0.1
JITTER_MAX_FACTOR = 0.3

DEFAULT_HEADERS = {
    "User-Agent": f"ical_merger/{__version__}",
    "Accept": "text/calendar, text/plain;q=0.9, */*;q=0.8",
}


def resolve_local_path(url: str) -> Optional[Path]:
    """Return the filesystem path for a file:// URL or bare path, else None."""
    parsed = urlparse(url)
    if parsed.scheme == "file":
        path = parsed.path
        if parsed.netloc not in ("", "localhost"):
            path = f"//{parsed.netloc}{path}"
        return Path(url2pathname(path))
    # A one-letter scheme is a Windows drive letter
    if parsed.scheme == "" or len(parsed.scheme) == 1:
        return Path(url)
    return None


class ICSFetcher:
    """Async fetcher for calendar sources.

    http(s) and webcal URLs go through a shared ``httpx.AsyncClient`` with
    retry and jittered exponential backoff; file:// URLs and plain paths are
    read in a worker thread so the event loop never blocks on disk I/O.
    """

    def __init__(self, config: MergerConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        """Initialize fetcher.

        Args:
            config: Application configuration (timeouts and retry policy)
            client: Optional externally owned HTTP client
        """
        self.config = config
        self.client: Optional[httpx.AsyncClient] = client
        self._owns_client = client is None

    async def __aenter__(self) -> "ICSFetcher":
        await self._ensure_client()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            timeout = httpx.Timeout(
                connect=10.0, read=self.config.request_timeout, write=10.0, pool=30.0
            )
            limits = httpx.Limits(
                max_connections=max(self.config.fetch_concurrency, 1) * 2,
                max_keepalive_connections=self.config.fetch_concurrency,
            )
            self.client = httpx.AsyncClient(
                timeout=timeout,
                limits=limits,
                follow_redirects=True,
                headers=DEFAULT_HEADERS,
            )
            self._owns_client = True
            logger.debug("Created HTTP client")
        return self.client

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self.client is not None and self._owns_client and not self.client.is_closed:
            await self.client.aclose()
            logger.debug("Closed HTTP client")
        if self._owns_client:
            self.client = None

    async def fetch(self, source: SourceConfig) -> FetchResponse:
        """Fetch the raw payload of ``source``.

        Raises:
            FetchAuthError: on HTTP 401/403
            FetchTimeoutError: when every attempt timed out
            FetchNetworkError: on connection failures after all retries
            FetchError: on any other HTTP status, an unreadable file, an
                unsupported scheme or an empty payload
        """
        local_path = resolve_local_path(source.url)
        if local_path is not None:
            return await self._fetch_file(source, local_path)

        url = source.url
        scheme = urlparse(url).scheme.lower()
        if scheme == "webcal":
            url = "https" + url[len("webcal") :]
        elif scheme not in ("http", "https"):
            raise FetchError(f"Unsupported URL scheme {scheme!r} for source {source.name}")

        return await self._fetch_http(source, url)

    async def _fetch_file(self, source: SourceConfig, path: Path) -> FetchResponse:
        logger.debug("Reading source %s from %s", source.name, path)
        try:
            content = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise FetchError(f"Cannot read {path}: {e}") from e
        if not content.strip():
            raise FetchError(f"Empty content in {path}")
        return FetchResponse(source_name=source.name, content=content)

    async def _fetch_http(self, source: SourceConfig, url: str) -> FetchResponse:
        headers = {**source.auth.get_headers(), **source.custom_headers}
        timeout = self.config.request_timeout_for(source)

        try:
            response = await self._make_request_with_retry(url, headers, timeout)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (401, 403):
                raise FetchAuthError(
                    f"Authentication failed for {source.name}: HTTP {status}", status
                ) from e
            raise FetchError(
                f"HTTP {status}: {e.response.reason_phrase} for source {source.name}"
            ) from e
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(f"Request timeout after {timeout}s for {source.name}") from e
        except httpx.NetworkError as e:
            raise FetchNetworkError(f"Network error for {source.name}: {e}") from e
        except httpx.HTTPError as e:
            raise FetchError(f"HTTP error for {source.name}: {e}") from e

        content_type = response.headers.get("content-type", "").lower()
        if content_type and not any(ct in content_type for ct in ("text/calendar", "text/plain")):
            logger.warning("Unexpected content type for %s: %s", source.name, content_type)

        content = response.content
        if not content.strip():
            raise FetchError(f"Empty content received from {source.name}")

        return FetchResponse(
            source_name=source.name,
            content=content,
            status_code=response.status_code,
            headers=dict(response.headers),
        )

    def _calculate_backoff(self, attempt: int, backoff_factor: float) -> float:
        """Exponential backoff with random jitter, capped at MAX_BACKOFF_SECONDS."""
        base_backoff = min(backoff_factor**attempt, MAX_BACKOFF_SECONDS)
        jitter = random.uniform(JITTER_MIN_FACTOR, JITTER_MAX_FACTOR) * base_backoff  # nosec B311
        return base_backoff + jitter

    async def _make_request_with_retry(
        self, url: str, headers: dict[str, str], timeout: float
    ) -> httpx.Response:
        """GET ``url``, retrying timeouts and network errors.

        HTTP status errors are raised immediately without retry.
        """
        client = await self._ensure_client()
        max_retries = self.config.max_retries
        backoff_factor = self.config.retry_backoff_factor
        attempt = 0

        while True:
            try:
                response = await client.get(url, headers=headers, timeout=timeout)
                response.raise_for_status()
                logger.debug(
                    "Fetched %s (attempt %d) - %d bytes", url, attempt + 1, len(response.content)
                )
                return response
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                if attempt >= max_retries:
                    logger.error("All %d attempts failed for %s: %s", attempt + 1, url, e)
                    raise
                backoff_time = self._calculate_backoff(attempt, backoff_factor)
                logger.warning(
                    "Request failed (attempt %d/%d), retrying in %.1fs: %s",
                    attempt + 1,
                    max_retries + 1,
                    backoff_time,
                    e,
                )
                await asyncio.sleep(backoff_time)
                attempt += 1
