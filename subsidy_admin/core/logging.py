"""
structlog configuration.

JSON lines in production, coloured console output (through rich) while
developing. Every module logs through ``structlog.get_logger(__name__)``.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler

from .config import settings


QUIET_LOGGERS = ("uvicorn.access", "asyncio", "sqlalchemy.engine", "web3", "aiohttp.access")

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def _renderer():
    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=settings.is_development)


def _handlers(level: int, log_file: Optional[str]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []

    if settings.is_development and settings.log_format != "json":
        handlers.append(RichHandler(
            console=Console(file=sys.stderr),
            show_path=False,
            rich_tracebacks=True,
        ))
    else:
        handlers.append(logging.StreamHandler(sys.stdout))

    target = log_file or settings.log_file
    if target:
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path))

    for handler in handlers:
        handler.setLevel(level)
        if not isinstance(handler, RichHandler):
            handler.setFormatter(logging.Formatter("%(message)s"))
    return handlers


def setup_logging(log_file: Optional[str] = None) -> None:
    """Configure structlog and the stdlib root logger it writes through."""
    level = logging.getLevelName(settings.log_level)

    structlog.configure(
        processors=[*_SHARED_PROCESSORS, _renderer()],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(level=level, handlers=_handlers(level, log_file), force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
