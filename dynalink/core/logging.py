"""
Core logging module.

This module configures the application logging with Loguru.
"""

import logging
import os
import sys

from loguru import logger

from dynalink.core.config import settings


class InterceptHandler(logging.Handler):
    """
    Intercept standard logging and redirect to loguru.

    Modules log through ``logging.getLogger(__name__)``; this handler
    forwards those records (and uvicorn/sqlalchemy records) to loguru.
    """

    def emit(self, record: logging.LogRecord) -> None:
        # Try to get corresponding Loguru level or use level number
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where the logged message originated
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def register_request_level() -> None:
    """Register the custom REQUEST log level used for access logs."""
    try:
        logger.level("REQUEST")
    except ValueError:
        logger.level("REQUEST", no=25, color="<green>")


def _not_incident(record) -> bool:
    return record["extra"].get("event_type") != "incident"


def _file_sink_options() -> dict:
    """Rotation and formatting shared by the application log file."""
    options = {
        "level": settings.LOG_LEVEL.upper(),
        "rotation": settings.LOG_ROTATION,
        "retention": settings.LOG_RETENTION,
        "compression": "gz",
        "filter": _not_incident,
    }
    if settings.LOG_JSON:
        options["serialize"] = True
    else:
        options["format"] = settings.LOG_FORMAT
    return options


def setup_logging():
    """
    Configure loguru sinks and route stdlib logging into them.

    Incident records have their own sinks (see ``incident_log``) and are
    kept out of the application log file.

    Returns:
        The configured loguru logger
    """
    logger.remove()

    if settings.DEBUG or not settings.LOG_TO_FILE:
        logger.add(
            sys.stderr,
            level=settings.LOG_LEVEL.upper(),
            format=settings.LOG_FORMAT,
            backtrace=settings.DEBUG,
            diagnose=settings.DEBUG,
        )

    if settings.LOG_TO_FILE:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        logger.add(os.path.join(settings.LOG_DIR, settings.LOG_FILENAME), **_file_sink_options())

    register_request_level()

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    # Loggers created before this point keep their own handlers otherwise
    for name in list(logging.root.manager.loggerDict.keys()):
        existing = logging.getLogger(name)
        existing.handlers = []
        existing.propagate = True

    for name in ("uvicorn", "uvicorn.access", "uvicorn.error", "fastapi"):
        server_logger = logging.getLogger(name)
        server_logger.handlers = [InterceptHandler()]
        server_logger.propagate = False

    # SQL statements are only logged when DB_ECHO is on
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.DB_ECHO else logging.WARNING)

    return logger
