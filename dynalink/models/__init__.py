"""
Data models for the dynalink service.

This module imports and exports all SQLModel models used in the application.
"""

# Table models in dependency order (parent before child)
from dynalink.models.link import Link, LinkBase, LinkCreate
from dynalink.models.scan import ScanEvent, ScanEventBase, ScanEventCreate

__all__ = [
    "Link",
    "LinkBase",
    "LinkCreate",
    "ScanEvent",
    "ScanEventBase",
    "ScanEventCreate",
]
