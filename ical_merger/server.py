"""HTTP serve mode: exposes the merged calendar over aiohttp.

Routes:
- GET /               plain-text banner
- GET /health         liveness check
- GET /calendar       the merged ICS file (?nocache=1 merges first)
- GET /api/calendar   merged events as JSON, filtered by ?days_back (default 1)
                      and ?days_forward (default 30); ?nocache=1 merges first
- GET /summary        merged events within 30 days of today as an ICS file
- GET /api/status     counters of the last merge cycle
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from typing import Any, Optional

from aiohttp import web

from .calendar_view import (
    DEFAULT_DAYS_BACK,
    DEFAULT_DAYS_FORWARD,
    SUMMARY_WINDOW_DAYS,
    DateWindow,
    events_to_json,
    filter_events_by_date_range,
    load_events,
    local_today,
    parse_day_count,
    summary_calendar,
)
from .exceptions import ICalMergerError
from .merge_cycle import MergeCycle
from .serializer import serialize_calendar

logger = logging.getLogger(__name__)

CYCLE_KEY = web.AppKey("cycle", MergeCycle)

BANNER = "iCal Merger is running. Use /calendar to access the merged calendar."


def _wants_refresh(request: web.Request) -> bool:
    return bool(request.query.get("nocache"))


async def _refresh_if_requested(request: web.Request) -> Optional[web.Response]:
    """Run a fresh merge for ?nocache requests; return an error response on failure."""
    if not _wants_refresh(request):
        return None
    cycle = request.app[CYCLE_KEY]
    logger.info("Nocache parameter set, refreshing calendar data")
    try:
        await cycle.run_once()
    except (ICalMergerError, OSError) as e:
        logger.error("Error merging calendars: %s", e)
        return web.Response(status=500, text=f"Error merging calendars: {e}")
    return None


async def _read_output(cycle: MergeCycle) -> Optional[bytes]:
    try:
        return await asyncio.to_thread(cycle.writer.read)
    except FileNotFoundError:
        return None


def _today(cycle: MergeCycle) -> datetime.date:
    return local_today(cycle.clock(), cycle.config.output_timezone, cycle.registry)


def calendar_to_json(data: bytes, cycle: MergeCycle, window: DateWindow) -> dict[str, Any]:
    """Summarize the events of a merged document starting inside ``window``."""
    tzid = cycle.config.output_timezone
    events = filter_events_by_date_range(load_events(data, tzid, cycle.registry), window)
    return events_to_json(events, tzid, cycle.registry, window=window)


def summary_to_ics(data: bytes, cycle: MergeCycle, window: DateWindow) -> bytes:
    """Re-serialize the events of a merged document starting inside ``window``."""
    tzid = cycle.config.output_timezone
    events = filter_events_by_date_range(load_events(data, tzid, cycle.registry), window)
    return serialize_calendar(summary_calendar(events, tzid, cycle.registry, cycle.clock()))


async def handle_root(_request: web.Request) -> web.Response:
    return web.Response(text=BANNER)


async def handle_health(_request: web.Request) -> web.Response:
    return web.Response(text="OK")


async def handle_calendar(request: web.Request) -> web.Response:
    """Serve the merged ICS file."""
    error = await _refresh_if_requested(request)
    if error is not None:
        return error

    cycle = request.app[CYCLE_KEY]
    data = await _read_output(cycle)
    if data is None:
        logger.warning("Calendar requested but %s does not exist yet", cycle.config.output_path)
        return web.Response(status=503, text="Merged calendar not available yet")

    headers = {
        "Content-Disposition": 'attachment; filename="merged.ics"',
        "Cache-Control": f"max-age={cycle.config.sync_interval_seconds}, public",
    }
    response = web.Response(
        body=data, content_type="text/calendar", charset="utf-8", headers=headers
    )
    logger.debug("Served calendar to %s (%d bytes)", request.remote, len(data))
    return response


async def handle_api_calendar(request: web.Request) -> web.Response:
    """Serve the merged events starting within ?days_back/?days_forward as JSON."""
    error = await _refresh_if_requested(request)
    if error is not None:
        return error

    cycle = request.app[CYCLE_KEY]
    data = await _read_output(cycle)
    if data is None:
        return web.json_response({"error": "merged calendar not available yet"}, status=503)

    window = DateWindow.around(
        _today(cycle),
        parse_day_count(request.query.get("days_back"), DEFAULT_DAYS_BACK),
        parse_day_count(request.query.get("days_forward"), DEFAULT_DAYS_FORWARD),
    )
    try:
        payload = calendar_to_json(data, cycle, window)
    except ICalMergerError as e:
        logger.error("Error parsing merged calendar: %s", e)
        return web.json_response({"error": str(e)}, status=500)
    return web.json_response(payload)


async def handle_summary(request: web.Request) -> web.Response:
    """Serve the merged events starting within 30 days of today as ICS."""
    error = await _refresh_if_requested(request)
    if error is not None:
        return error

    cycle = request.app[CYCLE_KEY]
    data = await _read_output(cycle)
    if data is None:
        return web.Response(status=503, text="Merged calendar not available yet")

    window = DateWindow.around(_today(cycle), SUMMARY_WINDOW_DAYS, SUMMARY_WINDOW_DAYS)
    try:
        body = summary_to_ics(data, cycle, window)
    except ICalMergerError as e:
        logger.error("Error building summary calendar: %s", e)
        return web.Response(status=500, text=f"Error building summary calendar: {e}")

    headers = {"Content-Disposition": 'attachment; filename="summary.ics"'}
    logger.info("Served summary calendar to %s (%d bytes)", request.remote, len(body))
    return web.Response(body=body, content_type="text/calendar", charset="utf-8", headers=headers)


async def handle_status(request: web.Request) -> web.Response:
    cycle = request.app[CYCLE_KEY]
    report = cycle.last_report
    return web.json_response(
        {
            "running": cycle.is_running,
            "last_report": report.to_dict() if report else None,
        }
    )


def make_app(cycle: MergeCycle) -> web.Application:
    """Create the aiohttp application bound to ``cycle``."""
    app = web.Application()
    app[CYCLE_KEY] = cycle
    app.router.add_get("/", handle_root)
    app.router.add_get("/health", handle_health)
    app.router.add_get("/calendar", handle_calendar)
    app.router.add_get("/api/calendar", handle_api_calendar)
    app.router.add_get("/summary", handle_summary)
    app.router.add_get("/api/status", handle_status)
    return app


def parse_addr(addr: str, default_host: str = "0.0.0.0", default_port: int = 8080) -> tuple[str, int]:
    """Split ``HOST:PORT`` (or ``:PORT``) into a host and port."""
    host, sep, port = addr.rpartition(":")
    if not sep:
        return default_host, int(addr) if addr else default_port
    return host or default_host, int(port) if port else default_port


async def serve(cycle: MergeCycle, host: str, port: int, stop_event: asyncio.Event) -> None:
    """Run the HTTP server until ``stop_event`` is set."""
    app = make_app(cycle)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=host, port=port)
    try:
        await site.start()
        logger.info("Server started on %s:%d", host, port)
        await stop_event.wait()
    finally:
        await runner.cleanup()
        logger.info("Server stopped")
