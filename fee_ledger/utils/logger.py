# fee_ledger/utils/logger.py

"""
Structured logging for the fee ledger service.

Every module obtains its logger with ``get_logger(__name__)`` and logs events
with key/value context, e.g. ``logger.info("Posted payment", balance_id=1)``.
Printf-style positional arguments are also accepted.
"""

import logging
import os
import sys

import structlog

_configured = False


def configure_logging(level: str = None, json_logs: bool = None) -> None:
    """
    Configure stdlib logging and structlog once per process.

    Development environments get a readable console renderer; everything else
    renders one JSON object per line.
    """
    global _configured

    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    if json_logs is None:
        json_logs = os.getenv("ENVIRONMENT", "development").lower() not in ("development", "local", "test")

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str):
    """Return a structlog logger bound to ``name``."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)
