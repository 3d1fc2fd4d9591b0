"""Test utilities for dynalink tests."""

import random
import string
from datetime import datetime
from typing import Dict, Any, Optional

from dynalink.core.timeutils import utcnow
from dynalink.models.link import Link
from dynalink.models.scan import ScanEvent

DESKTOP_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"
IPHONE_UA = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
ANDROID_PHONE_UA = "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Mobile Safari/537.36"
ANDROID_TABLET_UA = "Mozilla/5.0 (Linux; Android 13; SM-X700) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"
IPAD_UA = "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"


def random_string(length: int = 7) -> str:
    """Generate a random alphanumeric string."""
    return ''.join(random.choice(string.ascii_letters + string.digits) for _ in range(length))


def random_url() -> str:
    """Generate a random URL for testing."""
    domain = f"{random_string(8)}.com"
    path = random_string(12)
    return f"https://{domain}/{path}"


def create_test_link_data(
    destination: Optional[str] = None,
    code: Optional[str] = None,
    alias: Optional[str] = None,
    expires_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Create test data dict for a Link."""
    return {
        "destination": destination or random_url(),
        "code": alias or code or random_string(7),
        "alias": alias,
        "expires_at": expires_at,
    }


async def create_test_link(
    db,
    destination: Optional[str] = None,
    code: Optional[str] = None,
    alias: Optional[str] = None,
    expires_at: Optional[datetime] = None,
) -> Link:
    """Create and commit a test Link in the database."""
    link = Link(**create_test_link_data(destination, code, alias, expires_at))
    db.add(link)
    await db.commit()
    await db.refresh(link)
    return link


async def create_test_scan(
    db,
    code: str,
    occurred_at: Optional[datetime] = None,
    user_agent: Optional[str] = None,
    country: Optional[str] = None,
    city: Optional[str] = None,
    referrer: Optional[str] = None,
) -> ScanEvent:
    """Create and commit a test ScanEvent."""
    scan = ScanEvent(
        code=code,
        occurred_at=occurred_at or utcnow(),
        user_agent=user_agent,
        country=country,
        city=city,
        referrer=referrer,
    )
    db.add(scan)
    await db.commit()
    await db.refresh(scan)
    return scan
