"""Structured logging for the bingo host.

structlog renders every record, including records emitted through stdlib
``logging`` by the message router and by uvicorn. Per-connection context
(lobby_id, connection_id) is carried in contextvars and merged into each
event.

Environment variables:
- LOG_FORMAT: "json" for one JSON object per line, "console" or unset for
  human-readable output.
- LOG_LEVEL: "DEBUG", "INFO" (default), "WARNING", "ERROR", or "CRITICAL".
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from typing import Any

LOG_FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
LOG_FILE_PREFIX = "host"

_LOG_FORMATS = ("json", "console", "")
_LOG_LEVELS = ("CRITICAL", "DEBUG", "ERROR", "INFO", "WARNING")

# chatty at INFO: httpx/httpcore under the test client, uvicorn.access per request
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _plain(value: object) -> object:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def _serialize_enums(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Log enum members (game status, patterns, error codes) by value."""
    for key, value in event_dict.items():
        event_dict[key] = {k: _plain(v) for k, v in value.items()} if isinstance(value, dict) else _plain(value)
    return event_dict


def _is_test() -> bool:
    return "pytest" in sys.modules


def _env_choice(name: str, default: str, allowed: tuple[str, ...]) -> str:
    value = os.environ.get(name, default)
    value = value.upper() if name == "LOG_LEVEL" else value.lower()
    if value not in allowed:
        shown = ", ".join(repr(a) for a in allowed if a) + (", or unset" if "" in allowed else "")
        raise ValueError(f"Invalid {name}={value!r}. Must be one of {shown}.")
    return value


def _handler(file_path: Path | None, *, json_mode: bool) -> logging.Handler:
    if file_path is None:
        handler: logging.Handler = logging.StreamHandler(sys.stdout)
        colors = sys.stdout.isatty()
    else:
        handler = logging.FileHandler(file_path)
        colors = False
    renderer = structlog.processors.JSONRenderer() if json_mode else structlog.dev.ConsoleRenderer(colors=colors)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            # records from plain stdlib loggers skip the structlog chain
            foreign_pre_chain=[
                structlog.contextvars.merge_contextvars,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
            ],
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        ),
    )
    return handler


def log_file_path(log_dir: Path | str, now: datetime | None = None) -> Path:
    """Path of the log file opened for a host started at ``now``."""
    stamp = (now or datetime.now(tz=UTC)).strftime(LOG_FILE_TIMESTAMP_FORMAT)
    return Path(log_dir) / f"{LOG_FILE_PREFIX}_{stamp}.log"


def setup_logging(
    log_dir: Path | str | None = None,
    level: int | None = None,
) -> Path | None:
    """Route structlog and stdlib logging to stdout, and to a file when asked.

    Output always goes to stdout. When log_dir is given (and the process is
    not a test run) a timestamped file is opened there as well and its path
    returned. Raises ValueError for an unknown LOG_FORMAT or LOG_LEVEL.
    """
    json_mode = _env_choice("LOG_FORMAT", "", _LOG_FORMATS) == "json"
    if level is None:
        level = logging.getLevelNamesMapping()[_env_choice("LOG_LEVEL", "INFO", _LOG_LEVELS)]

    # format_exc_info lives in the handler formatter so file output does not
    # render a traceback twice
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _serialize_enums,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    root.addHandler(_handler(None, json_mode=json_mode))

    if log_dir is None or _is_test():
        return None

    path = log_file_path(log_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    root.addHandler(_handler(path, json_mode=json_mode))
    return path
