"""Incident logging using Loguru's built-in async features.

Incidents are failures that must not fail a request but still need an
operator's attention: a cache entry that could not be invalidated after a
destination change, or a background side effect that raised.
"""

import os
from typing import Optional

from loguru import logger

from dynalink.core.config import settings
from dynalink.core.timeutils import utcnow

STALE_CACHE_RISK = "stale_cache_risk"
BACKGROUND_TASK_FAILED = "background_task_failed"

incident_logger = None


def setup_incident_logging():
    """Configure the incident logger with its own enqueued file sinks."""
    global incident_logger

    incident_logger = logger.bind(event_type="incident")

    if not settings.LOG_TO_FILE:
        return incident_logger

    os.makedirs(settings.LOG_DIR, exist_ok=True)
    base_path = os.path.join(settings.LOG_DIR, settings.INCIDENT_LOG_FILENAME)

    logger.add(
        f"{base_path}.log",
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | Kind:{extra[kind]} | Code:{extra[code]} | {message}",
        rotation=settings.LOG_ROTATION,
        retention=settings.LOG_RETENTION,
        enqueue=True,
        level="WARNING",
        backtrace=False,
        diagnose=False,
        filter=lambda record: record["extra"].get("event_type") == "incident",
    )

    logger.add(
        f"{base_path}.json",
        serialize=True,
        enqueue=True,
        level="WARNING",
        filter=lambda record: record["extra"].get("event_type") == "incident",
    )

    return incident_logger


def report_incident(
    kind: str,
    code: Optional[str],
    error: Optional[BaseException] = None,
    **context,
) -> None:
    """
    Write an incident record without blocking the caller.

    Args:
        kind: Incident category, e.g. ``stale_cache_risk``
        code: The short code involved, if any
        error: The exception that caused the incident
        **context: Extra fields stored with the record
    """
    if incident_logger is None:
        setup_incident_logging()

    detail = f"{type(error).__name__}: {error}" if error is not None else ""
    incident_logger.bind(
        kind=kind,
        code=code or "-",
        error=detail,
        reported_at=utcnow().isoformat(),
        **context,
    ).error(f"Incident {kind} for code {code}: {detail}" if detail else f"Incident {kind} for code {code}")
