"""
Scan event data models.

This module defines the ScanEvent model, one row per resolution of a code.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index
from sqlmodel import Field, SQLModel

from dynalink.core.timeutils import utcnow

USER_AGENT_MAX_LENGTH = 1024
REFERRER_MAX_LENGTH = 2048
COUNTRY_MAX_LENGTH = 8
CITY_MAX_LENGTH = 128


class ScanEventBase(SQLModel):
    """Base model for scan event data."""

    occurred_at: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime,
        description="Timestamp when the code was resolved"
    )
    user_agent: Optional[str] = Field(
        default=None,
        description="User agent string of the scanning client",
        max_length=USER_AGENT_MAX_LENGTH
    )
    country: Optional[str] = Field(
        default=None,
        description="Country code reported by the edge",
        max_length=COUNTRY_MAX_LENGTH
    )
    city: Optional[str] = Field(
        default=None,
        description="City reported by the edge",
        max_length=CITY_MAX_LENGTH
    )
    referrer: Optional[str] = Field(
        default=None,
        description="Referer header of the request",
        max_length=REFERRER_MAX_LENGTH
    )


class ScanEvent(ScanEventBase, table=True):
    """
    Scan event model for usage aggregation.

    Rows are append-only and written by background tasks so the redirect
    path never waits on them.
    """

    __tablename__ = "scan_events"

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(
        foreign_key="links.code",
        max_length=16,
        description="Short code that was resolved"
    )

    __table_args__ = (
        Index("ix_scan_events_code_occurred_at", "code", "occurred_at"),
        Index("ix_scan_events_country", "country"),
    )


class ScanEventCreate(ScanEventBase):
    """Schema for creating a new scan event."""
    code: str
