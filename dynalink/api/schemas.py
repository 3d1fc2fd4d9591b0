"""API request and response schemas.

This module contains Pydantic models for API request validation
and response serialization.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from dynalink.models.scan import (
    CITY_MAX_LENGTH,
    COUNTRY_MAX_LENGTH,
    REFERRER_MAX_LENGTH,
    USER_AGENT_MAX_LENGTH,
)


class LinkCreateRequest(BaseModel):
    """Request schema for creating a link."""
    destination: str = Field(..., description="Absolute URI to redirect to")
    alias: Optional[str] = Field(None, description="Custom code, up to 7 of [A-Za-z0-9_-]")
    expires_at: Optional[datetime] = Field(None, description="When the link stops resolving")


class LinkUpdateRequest(BaseModel):
    """Request schema for changing a link's destination."""
    destination: str


class LinkResponse(BaseModel):
    """Response schema for link information."""
    model_config = ConfigDict(from_attributes=True)

    code: str
    destination: str
    short_url: str  # Full URL including base domain
    alias: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    expires_at: Optional[datetime] = None


class LinkUpdateResponse(BaseModel):
    """Response schema for a destination change."""
    code: str
    destination: str
    updated_at: datetime


class ResolveResponse(BaseModel):
    """Response schema for resolving a code without redirecting."""
    destination: str


class ScanIngestRequest(BaseModel):
    """Scan reported by an external router such as an edge worker."""
    code: str = Field(..., min_length=1, max_length=16)
    user_agent: Optional[str] = Field(None, max_length=USER_AGENT_MAX_LENGTH)
    referrer: Optional[str] = Field(None, max_length=REFERRER_MAX_LENGTH)
    country: Optional[str] = Field(None, max_length=COUNTRY_MAX_LENGTH)
    city: Optional[str] = Field(None, max_length=CITY_MAX_LENGTH)


class ScanAcceptedResponse(BaseModel):
    accepted: bool = True


class CountryCount(BaseModel):
    country: str
    count: int


class CityCount(BaseModel):
    city: str
    count: int


class TimelinePoint(BaseModel):
    """Schema for a point in a timeline chart."""
    date: str
    count: int


class RecentScan(BaseModel):
    occurred_at: datetime
    country: Optional[str] = None
    city: Optional[str] = None
    device: str
    referrer: Optional[str] = None


class UsageSnapshotResponse(BaseModel):
    """Response schema for link usage analytics."""
    code: str
    destination: str
    created_at: datetime
    total_count: int
    count_today: int
    devices: Dict[str, int]
    top_countries: List[CountryCount]
    top_cities: List[CityCount]
    time_series: List[TimelinePoint]
    recent_events: List[RecentScan]


class ErrorResponse(BaseModel):
    """Schema for error responses."""
    detail: str
    error_code: str
