"""
Logging setup.

stdlib logging and structlog share one handler so that service modules using
``logging.getLogger(__name__)`` and the app/db layer using structlog event names
end up in the same stream and format.
"""

import logging
import sys
from typing import Optional

import structlog

from skooly.core.config import settings


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """
    Configure stdlib logging and structlog.

    Args:
        level: Log level name (default from settings.LOG_LEVEL)
        log_format: "json" or "text" (default from settings.LOG_FORMAT)
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    fmt = log_format or settings.LOG_FORMAT

    timestamper = structlog.processors.TimeStamper(fmt="iso")

    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    processor_formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=[
            timestamper,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(processor_formatter)

    root = logging.getLogger()
    root.handlers = []
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))

    # Third-party chatter
    for noisy in ("httpx", "httpcore", "botocore", "urllib3", "google_genai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            timestamper,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None):
    """Return a structlog logger, e.g. ``logger = get_logger(__name__)``."""
    return structlog.get_logger(name)
