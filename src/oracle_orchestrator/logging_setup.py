"""Root logger configuration for the orchestrator process.

Library modules only ever call ``logging.getLogger(__name__)``. The CLI calls
:func:`configure_logging` once at startup with the ``[logging]`` settings.

Formats:
    simple    ``INFO rooch/testnet/0xabc fulfilled request 7``
    detailed  timestamp, level, logger name, message
    json      one JSON object per line, for log shippers
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

from oracle_orchestrator.config import LoggingSettings

FORMATS = {
    "simple": "%(levelname)s %(message)s",
    "detailed": "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
}

# Chatty third-party loggers held at WARNING unless DEBUG is requested.
QUIET_LOGGERS = ("httpx", "httpcore")


class JsonFormatter(logging.Formatter):
    """Render each record as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(settings: LoggingSettings) -> logging.Handler:
    """Install a single stderr handler on the root logger.

    Calling it again replaces the handler installed by the previous call.

    Returns:
        The installed handler.
    """
    level = logging.getLevelName(settings.level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    if settings.format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(FORMATS.get(settings.format, FORMATS["detailed"])))
    handler.set_name("oracle-orchestrator")

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == "oracle-orchestrator":
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    quiet_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
    return handler
