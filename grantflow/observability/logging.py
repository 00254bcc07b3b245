from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

from .context import get_search_id

if TYPE_CHECKING:
    from ..settings import Settings

# Loggers that narrate every HTTP round trip at INFO.
_CHATTY = ("httpx", "httpcore", "openai")

_CONFIGURED = False


def _add_search_id(_: logging.Logger, __: str, event_dict: dict) -> dict:
    sid = get_search_id()
    if sid:
        event_dict["search_id"] = sid
    return event_dict


def _shared_processors() -> list:
    return [
        _add_search_id,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def configure_logging(*, level: str | int = "INFO", json_output: bool = True) -> None:
    """
    Route stdlib logging and structlog through one stdout handler.

    With ``json_output`` every record is a single JSON object per line; otherwise
    structlog's console renderer is used, which is easier to read locally.
    Calling this more than once is a no-op.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=_shared_processors())
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    for name in _CHATTY:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def configure_from_settings(settings: Settings) -> None:
    # JSON in production, readable lines everywhere else.
    configure_logging(level=settings.log_level.upper(), json_output=settings.is_production)


def get_logger(name: str | None = None):
    return structlog.get_logger(name)
