"""Core module for the dynalink service."""

from dynalink.core.config import settings

__all__ = ["settings"]
