"""Short link data models.

This module defines the Link model mapping a short code to its destination.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, Index, String
from sqlmodel import Field, SQLModel

from dynalink.core.config import MAX_CODE_LENGTH
from dynalink.core.timeutils import utcnow


class LinkBase(SQLModel):
    """Base model for link data."""

    destination: str = Field(
        description="Absolute URI the short code redirects to"
    )
    expires_at: Optional[datetime] = Field(
        default=None,
        sa_type=DateTime,
        description="When this link stops resolving (null means never)"
    )


class Link(LinkBase, table=True):
    """
    Link model for storing short codes in the database.

    When an alias is requested it becomes the code itself, so aliases and
    generated codes share one uniqueness space. Links are never deleted;
    an expired link is kept and answered with "gone".
    """

    __tablename__ = "links"

    code: str = Field(
        sa_column=Column(String(MAX_CODE_LENGTH), primary_key=True),
        description="Unique short code used in the redirect path"
    )
    alias: Optional[str] = Field(
        default=None,
        sa_column=Column(String(16), unique=True, nullable=True),
        description="User-chosen code, equal to ``code`` when present"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime,
        description="Timestamp when this link was created"
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime,
        description="Timestamp of the last destination change"
    )

    __table_args__ = (
        Index("ix_links_expires_at", "expires_at"),
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check whether the link has expired at ``now``.

        A link whose expiry equals ``now`` is already expired.
        """
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())


class LinkCreate(LinkBase):
    """Schema for creating a new link record."""
    code: str
    alias: Optional[str] = None
