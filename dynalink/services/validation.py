"""Input validation for link creation and updates."""

import re
from datetime import datetime
from typing import Optional
from urllib.parse import urlsplit

from dynalink.core.config import settings
from dynalink.core.timeutils import to_naive_utc, utcnow
from dynalink.services.exceptions import (
    InvalidAliasError,
    InvalidDestinationError,
    InvalidExpiryError,
)

SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*$")
ALIAS_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def validate_destination(destination: Optional[str]) -> str:
    """
    Check that ``destination`` is an absolute URI with a scheme and a host.

    Returns:
        str: The destination with surrounding whitespace removed

    Raises:
        InvalidDestinationError: If the destination is not usable
    """
    if destination is None or not str(destination).strip():
        raise InvalidDestinationError("Destination must not be empty")

    destination = str(destination).strip()
    try:
        parts = urlsplit(destination)
    except ValueError as e:
        raise InvalidDestinationError(f"Invalid destination: {destination}") from e

    if not parts.scheme or not SCHEME_PATTERN.match(parts.scheme) or not parts.netloc:
        raise InvalidDestinationError(f"Invalid destination: {destination}")
    return destination


def normalize_alias(alias: Optional[str]) -> Optional[str]:
    """
    Trim and check a requested alias.

    A blank alias means none was requested.

    Returns:
        The trimmed alias, or None

    Raises:
        InvalidAliasError: If the alias is too long or has invalid characters
    """
    if alias is None:
        return None
    alias = alias.strip()
    if not alias:
        return None
    if len(alias) > settings.ALIAS_MAX_LENGTH:
        raise InvalidAliasError(
            f"Alias must be {settings.ALIAS_MAX_LENGTH} characters or fewer"
        )
    if not ALIAS_PATTERN.match(alias):
        raise InvalidAliasError(
            "Alias may contain only letters, digits, hyphens and underscores"
        )
    return alias


def validate_expiry(expires_at: Optional[datetime], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Check that ``expires_at`` lies strictly in the future.

    Returns:
        The expiry as naive UTC, or None

    Raises:
        InvalidExpiryError: If the expiry is not after ``now``
    """
    if expires_at is None:
        return None
    expires_at = to_naive_utc(expires_at)
    if expires_at <= (now or utcnow()):
        raise InvalidExpiryError("Expiry must be in the future")
    return expires_at
