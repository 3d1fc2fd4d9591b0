"""Common API parameter definitions.

This module provides reusable parameter definitions for FastAPI endpoints.
"""

from fastapi import Path

from dynalink.core.config import MAX_CODE_LENGTH


def CodeParam() -> str:
    """
    Common short code path parameter.

    Returns:
        A Path parameter with length validation
    """
    return Path(
        ...,
        min_length=1,
        max_length=MAX_CODE_LENGTH,
        description="Short code or alias"
    )
