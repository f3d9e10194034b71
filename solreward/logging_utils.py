from __future__ import annotations

import logging
import os
import sys
import threading
import time
from datetime import datetime, timezone
from typing import Any, Iterable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import orjson

DEFAULT_FORMAT = (
    "%(asctime)sZ [%(levelname)s] %(name)s:%(lineno)d "
    "(pid=%(process)d tid=%(threadName)s) | %(message)s"
)
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "aiohttp.access")

_SECRET_QUERY_KEYS = {"api-key", "api_key", "apikey", "token"}

_warn_once_lock = threading.Lock()
_warn_once_last_emit: dict[str, float] = {}


class _UTCFormatter(logging.Formatter):
    """Formatter that renders timestamps in UTC."""

    converter = time.gmtime


_LOG_RECORD_RESERVED = set(logging.LogRecord(None, 0, "", 0, "", (), None).__dict__.keys())


class JsonFormatter(logging.Formatter):
    """Structured logging formatter producing JSON payloads."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - short summary sufficient
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .replace(tzinfo=None)
            .isoformat(timespec="milliseconds")
            + "Z",
            "level": record.levelname,
            "logger": record.name,
            "line": record.lineno,
            "msg": record.getMessage(),
            "process": record.process,
            "thread": record.threadName,
        }

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack_info"] = record.stack_info

        for key, value in record.__dict__.items():
            if key in payload or key.startswith("_") or key in _LOG_RECORD_RESERVED:
                continue
            payload[key] = value

        return orjson.dumps(payload, default=str).decode()


def parse_log_level(value: str | int | None) -> int:
    if not value:
        return logging.INFO
    if isinstance(value, int):
        return value
    level = str(value).strip().upper()
    if level.isdigit():
        return int(level)
    return getattr(logging, level, logging.INFO)


def setup_stdout_logging(
    *,
    level: str | int | None = None,
    json_logs: bool | None = None,
    fmt: str | None = None,
    datefmt: str | None = None,
    propagate_off: Iterable[str] = _NOISY_LOGGERS,
) -> logging.StreamHandler:
    """Ensure a single ``StreamHandler`` to ``sys.stdout`` exists on the root logger.

    ``level`` and ``json_logs`` default to the ``LOG_LEVEL`` and ``LOG_JSON``
    environment variables.
    """

    resolved_level = parse_log_level(level if level is not None else os.getenv("LOG_LEVEL"))
    if json_logs is None:
        json_logs = (os.getenv("LOG_JSON") or "").strip().lower() in {"1", "true", "yes", "on"}

    root = logging.getLogger()
    root.setLevel(resolved_level)

    sentinel_key = "_solreward_stdout_handler"
    handler = getattr(root, sentinel_key, None)
    if not isinstance(handler, logging.StreamHandler) or handler not in root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        root.addHandler(handler)
        setattr(root, sentinel_key, handler)

    handler.setLevel(resolved_level)
    if json_logs:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            _UTCFormatter(fmt or DEFAULT_FORMAT, datefmt=datefmt or DEFAULT_DATEFMT)
        )

    for name in propagate_off:
        logging.getLogger(name).propagate = False

    return handler


def warn_once_per(
    minutes: float,
    key: str,
    message: str,
    *args: Any,
    logger: logging.Logger | None = None,
    **kwargs: Any,
) -> bool:
    """Emit ``logger.warning`` for *message* at most once per *minutes* interval."""

    interval = max(0.0, minutes) * 60.0
    now = time.monotonic()

    with _warn_once_lock:
        last = _warn_once_last_emit.get(key)
        if last is not None and interval > 0 and now - last < interval:
            return False
        _warn_once_last_emit[key] = now

    target = logger or logging.getLogger()
    target.warning(message, *args, **kwargs)
    return True


def reset_warn_once_cache() -> None:
    """Clear cached emission timestamps for :func:`warn_once_per`."""

    with _warn_once_lock:
        _warn_once_last_emit.clear()


def redact_url(url: str) -> str:
    """Return *url* with API keys in the query string masked."""

    try:
        parts = urlsplit(url)
    except ValueError:
        return "<invalid-url>"
    if not parts.query:
        return url
    query = [
        (key, "***" if key.lower() in _SECRET_QUERY_KEYS else value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, urlencode(query, safe="*"), parts.fragment)
    )


__all__ = [
    "JsonFormatter",
    "parse_log_level",
    "setup_stdout_logging",
    "warn_once_per",
    "reset_warn_once_cache",
    "redact_url",
]
