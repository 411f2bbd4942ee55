"""structlog setup for the escrow ledger.

Ledger events are logged as ``<component>.<event>`` with keyword context
(``shipment.advanced``, ``ledger.debited``). Amounts may be passed as
Decimal; they are rendered as plain strings in both output modes.
A request_id bound by the API middleware rides along on every entry
logged while that request is served.

    setup_logging(log_level="INFO", json_logs=True)
    get_logger(__name__).info("shipment.opened", shipment_id=sid, price=price)
"""

from __future__ import annotations

import logging
import sys
from decimal import Decimal
from typing import Any

import structlog

# SQL echo and HTTP access logs drown out ledger events.
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "httpx", "httpcore")


def _decimals_as_strings(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def _renderer(json_logs: bool) -> structlog.types.Processor:
    if json_logs:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging(log_level: str = "DEBUG", json_logs: bool = False) -> None:
    """Route structlog through the stdlib root logger on stdout.

    ``json_logs`` selects one JSON object per line (with tracebacks as
    dicts) instead of the console renderer.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _decimals_as_strings,
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        processors.append(structlog.processors.dict_tracebacks)

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(json_logs),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper(), logging.DEBUG))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Logger for ``name`` (usually the calling module's ``__name__``)."""
    return structlog.get_logger(name)
