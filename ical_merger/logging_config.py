"""
Central logging configuration for ical_merger.

Keeps third-party libraries quiet while ical_merger modules log at INFO, or
DEBUG in debug mode.
"""

import logging
import os
from typing import Optional

# Third-party libraries that generate excessive debug logs
THIRD_PARTY_LEVELS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "aiohttp.web": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "icalendar": logging.INFO,
}


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> int:
    """
    Configure logging levels for ical_merger and its dependencies.

    Args:
        debug_mode: Whether to enable debug logging for ical_merger modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        ICAL_MERGER_DEBUG: Set to '1', 'true', 'yes' or 'on' to force debug logging
        ICAL_MERGER_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        The root log level applied
    """
    env_debug = os.getenv("ICAL_MERGER_DEBUG", "").lower() in ("1", "true", "yes", "on")
    env_log_level = os.getenv("ICAL_MERGER_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    for logger_name, level in THIRD_PARTY_LEVELS.items():
        logging.getLogger(logger_name).setLevel(level)
    logging.getLogger("ical_merger").setLevel(root_level)

    if final_debug:
        root_logger.info("Debug logging enabled for ical_merger modules")
    return root_level
