"""
Logging setup for the CLI.

- Rich console output by default, single-line JSON when requested.
- Never log secrets: access tokens and API keys stay out of messages.
"""

import json
import logging
import sys
from typing import Any

from rich.console import Console
from rich.logging import RichHandler


def _json_serial(obj: Any) -> str:
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    return str(obj)


class JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON for log aggregators."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0]:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_serial)


def configure_logging(level: str = "INFO", json_output: bool = False) -> logging.Handler:
    """
    Configure the root logger.

    Parameters
    ----------
    level : str
        Level name, unknown names fall back to INFO
    json_output : bool
        Use :class:`JsonFormatter` on stdout instead of a RichHandler on stderr

    Returns
    -------
    logging.Handler
        The installed handler

    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(log_level)
    # Avoid duplicate handlers when called more than once
    for h in root.handlers[:]:
        root.removeHandler(h)

    if json_output:
        handler: logging.Handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
    else:
        handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(log_level)
    root.addHandler(handler)

    # Reduce noise from third-party libs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return handler
