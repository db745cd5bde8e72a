"""nfo logging for tracequery: terminal output plus an optional markdown log.

Every module logs through ``logging.getLogger("tracequery.<module>")``;
``setup_logging`` bridges those stdlib loggers into nfo sinks once, at
CLI or server startup. Library users who never call it get plain stdlib
logging.
"""

from __future__ import annotations

import logging
import os
import sys

from nfo.configure import configure
from nfo.logger import Logger
from nfo.sinks import MarkdownSink
from nfo.terminal import TerminalSink

ENV_PREFIX = "TRACEQUERY_NFO_"
_TRANSPORT_LOGGERS = ("httpx", "httpcore", "uvicorn.access")

_configured: Logger | None = None


def setup_logging(level: str = "INFO", log_file: str | None = None, terminal_format: str | None = None) -> Logger:
    """Route tracequery logs to stderr (and ``log_file`` as markdown). Safe to call twice.

    ``log_file`` and ``terminal_format`` fall back to TRACEQUERY_NFO_LOG_FILE
    and TRACEQUERY_NFO_FORMAT.
    """
    global _configured
    if _configured is not None:
        return _configured

    log_file = log_file or os.getenv(f"{ENV_PREFIX}LOG_FILE") or None
    terminal_format = terminal_format or os.getenv(f"{ENV_PREFIX}FORMAT", "color")

    # @log_call argument and return capture only at DEBUG
    verbose = level.upper() == "DEBUG"
    sinks = [
        TerminalSink(
            format=terminal_format,
            stream=sys.stderr,
            show_args=verbose,
            show_return=verbose,
            show_duration=True,
            show_traceback=verbose,
        )
    ]
    if log_file:
        sinks.append(MarkdownSink(file_path=log_file))

    _configured = configure(
        name="tracequery",
        level=level.upper(),
        sinks=sinks,
        bridge_stdlib=True,
        propagate_stdlib=False,
        env_prefix=ENV_PREFIX,
        version=_package_version(),
        force=True,
    )
    quiet_transport_loggers()
    return _configured


def quiet_transport_loggers(level: int = logging.WARNING) -> None:
    """Lower the per-request loggers of httpx, httpcore and uvicorn."""
    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(level)


def get_logger() -> Logger:
    """The package's nfo logger, configured from TRACEQUERY_LOG_LEVEL on first use."""
    if _configured is None:
        return setup_logging(os.getenv("TRACEQUERY_LOG_LEVEL", "INFO"))
    return _configured


def _package_version() -> str:
    from tracequery import __version__

    return __version__
