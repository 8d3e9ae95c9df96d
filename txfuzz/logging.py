"""Central logging helpers"""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, Union
import structlog
import structlog.stdlib

from txfuzz.config import settings

_DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _build_file_handler(component: str, log_dir: Path) -> RotatingFileHandler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / f"{component}.log", maxBytes=5 * 1024 * 1024, backupCount=5
    )
    handler.setFormatter(logging.Formatter(_DEFAULT_FORMAT))
    return handler


def setup_logging(
    component: str = "txfuzz",
    level: Optional[Union[int, str]] = None,
    json_output: Optional[bool] = None,
) -> None:
    """Configure structlog + stdlib logging for a component (api, cli, ...)"""
    if level is None:
        level = logging.getLevelName(settings.log_level.upper())
    if json_output is None:
        json_output = settings.log_json

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    file_error: Optional[OSError] = None
    if settings.log_to_file:
        try:
            handlers.append(_build_file_handler(component, settings.log_dir))
        except OSError as exc:
            file_error = exc

    logging.basicConfig(level=level, handlers=handlers, format=_DEFAULT_FORMAT, force=True)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logger = structlog.get_logger()
    if file_error is not None:
        logger.warning(
            "log_file_unavailable",
            component=component,
            log_dir=str(settings.log_dir),
            error=str(file_error),
        )
    logger.info("logging_initialized", component=component)
