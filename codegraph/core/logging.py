"""
Structured Logging
==================

structlog configured on top of stdlib logging, so library loggers
(SQLAlchemy, aiosqlite) and engine loggers share one pipeline.
"""

import logging
import sys

import structlog

from codegraph.core.config import Settings, settings as default_settings


_configured = False


def configure_logging(config: Settings | None = None, *, force: bool = False) -> None:
    """
    Configure stdlib logging and structlog once per process.

    Args:
        config: Settings to read LOG_LEVEL / LOG_JSON from
        force: Reconfigure even if already configured (tests)
    """
    global _configured
    if _configured and not force:
        return

    cfg = config or default_settings
    level = getattr(logging, str(cfg.LOG_LEVEL).upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
        force=force,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if cfg.LOG_JSON
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
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
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)
