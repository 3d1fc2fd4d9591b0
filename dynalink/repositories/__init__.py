"""Repository layer for the dynalink service.

This module provides repository classes that abstract database operations
and implement the Repository pattern for clean separation of concerns.
"""

from dynalink.repositories.base import (
    BaseRepository,
    RepositoryError,
    DuplicateEntityError
)
from dynalink.repositories.link_repository import LinkRepository
from dynalink.repositories.scan_repository import ScanRepository

__all__ = [
    # Base classes and exceptions
    "BaseRepository",
    "RepositoryError",
    "DuplicateEntityError",

    # Concrete repositories
    "LinkRepository",
    "ScanRepository",
]
