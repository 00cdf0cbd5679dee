"""ical_merger - merges several iCalendar feeds into one RFC 5545 calendar.

Every date-time is rewritten relative to a single output timezone and the
document declares exactly one matching VTIMEZONE. Imports are kept light
here; the runtime modules are loaded by ``run``.
"""

__version__ = "0.1.0"

from typing import Any, Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Honors the ICAL_MERGER_DEBUG environment variable (truthy values: "1",
    "true", "yes", "on"), which forces DEBUG verbosity.
    """
    import logging
    import os
    import sys

    debug_env = os.environ.get("ICAL_MERGER_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure basic handler if no handlers are present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        try:
            from colorlog import ColoredFormatter

            # HH:MM:SS  LEVEL   logger.name: message, only the level colorized
            fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
            log_colors = {
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "bold_red",
            }
            formatter: logging.Formatter = ColoredFormatter(
                fmt, datefmt="%H:%M:%S", log_colors=log_colors
            )
        except ImportError:
            fmt = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
            formatter = logging.Formatter(fmt, datefmt="%H:%M:%S")

        handler.setFormatter(formatter)
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )


async def _run_async(config: Any, args: Any) -> int:
    import asyncio
    import contextlib
    import logging
    import signal

    from .exceptions import ICalMergerError
    from .merge_cycle import MergeCycle

    logger = logging.getLogger(__name__)

    async with MergeCycle(config) as cycle:
        if getattr(args, "once", False):
            try:
                report = await cycle.run_once()
            except (ICalMergerError, OSError):
                logger.exception("Merge cycle failed")
                return 1
            return 0 if report.written else 1

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)

        tasks = [asyncio.create_task(cycle.run_forever(stop_event))]
        if getattr(args, "serve", False):
            from .server import parse_addr, serve

            addr = getattr(args, "addr", None)
            if addr:
                host, port = parse_addr(addr, config.server_bind, config.server_port)
            else:
                host, port = config.server_bind, config.server_port
            tasks.append(asyncio.create_task(serve(cycle, host, port, stop_event)))

        try:
            await asyncio.gather(*tasks)
        finally:
            stop_event.set()
            await asyncio.gather(*tasks, return_exceptions=True)

    return 0


def run(args: Optional[object] = None) -> int:
    """Load configuration and run ical_merger.

    Args:
        args: Optional command line arguments namespace (see ``__main__``)

    Returns:
        Process exit status
    """
    import asyncio
    import logging
    import os

    _init_logging(os.environ.get("ICAL_MERGER_LOG_LEVEL"))

    from .config_manager import DEFAULT_CALENDAR_DIR, ConfigManager, apply_local_mode
    from .exceptions import ConfigError
    from .logging_config import configure_logging

    logger = logging.getLogger(__name__)

    try:
        config = ConfigManager(getattr(args, "config", None)).load_full_config(
            overrides={"output_path": getattr(args, "output", None)}
        )
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 2

    configure_logging(debug_mode=config.debug_logging)

    if getattr(args, "local", False):
        calendar_dir = getattr(args, "calendar_dir", None) or DEFAULT_CALENDAR_DIR
        config = apply_local_mode(config, calendar_dir)

    try:
        return asyncio.run(_run_async(config, args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
