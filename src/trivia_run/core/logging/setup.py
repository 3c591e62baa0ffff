from __future__ import annotations

import logging
import sys
from typing import Any

import orjson
import structlog

_configured_level: int | None = None


def _orjson_dumps(obj: Any, default: Any) -> str:
    return orjson.dumps(obj, default=default).decode("utf-8")


def _tail(env: str) -> list[Any]:
    # local runs get readable lines, deployed ones emit JSON for collectors
    if env == "local":
        return [structlog.dev.ConsoleRenderer(colors=False)]
    return [
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(serializer=_orjson_dumps),
    ]


def configure_logging(*, level: str = "INFO", env: str = "prod") -> None:
    """
    Configure structlog and stdlib logging for the process.

    Safe to call more than once (the app factory and tests both do); the
    last call wins.

    Every entry carries the bound context (run_id while a run is live),
    the level and a UTC ISO timestamp.
    """
    global _configured_level

    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            *_tail(env),
        ],
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=False,
    )

    if _configured_level is None:
        logging.basicConfig(
            level=log_level,
            format="%(message)s",
            handlers=[logging.StreamHandler(sys.stdout)],
        )
    else:
        logging.getLogger().setLevel(log_level)
    _configured_level = log_level


def bind_context(**values: Any) -> None:
    """
    Attach values to every subsequent log entry in this context.

    Example:
        bind_context(run_id="3f2a...")
    """
    structlog.contextvars.bind_contextvars(**values)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
