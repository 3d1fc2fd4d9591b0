"""Short code redirect endpoint with scan tracking."""

from fastapi import APIRouter, Depends, Request, status
from starlette.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from dynalink.api.dependencies import get_dispatcher
from dynalink.api.errors import APIError
from dynalink.core.config import settings
from dynalink.db.session import get_db
from dynalink.services.dispatcher import RedirectDispatcher, ResolutionOutcome, ScanContext
from dynalink.services.exceptions import ServiceError

# Create router with tags
router = APIRouter(tags=["redirect"])


def scan_context_from_request(request: Request) -> ScanContext:
    """Extract scan metadata from request headers."""
    headers = request.headers
    return ScanContext(
        user_agent=headers.get("user-agent"),
        referrer=headers.get("referer"),
        country=headers.get(settings.GEO_COUNTRY_HEADER),
        city=headers.get(settings.GEO_CITY_HEADER),
    )


@router.get(
    "/{code}",
    response_class=RedirectResponse,
    status_code=status.HTTP_302_FOUND
)
async def redirect_to_destination(
    request: Request,
    code: str,
    db: AsyncSession = Depends(get_db),
    dispatcher: RedirectDispatcher = Depends(get_dispatcher),
):
    """Redirect to the current destination; the scan is recorded in the background."""
    try:
        resolution = await dispatcher.resolve(db, code, client=scan_context_from_request(request))
    except ServiceError as e:
        raise APIError.from_service_error(e)

    if resolution.outcome == ResolutionOutcome.NOT_FOUND:
        raise APIError(status.HTTP_404_NOT_FOUND, f"Link with code '{code}' not found", "not_found")
    if resolution.outcome == ResolutionOutcome.GONE:
        raise APIError(status.HTTP_410_GONE, f"Link with code '{code}' has expired", "gone")

    logger.debug(f"Redirecting {code} (cache_hit={resolution.cache_hit})")
    # Temporary redirect so clients re-resolve after the destination changes
    return RedirectResponse(
        url=resolution.destination,
        status_code=status.HTTP_302_FOUND,
        headers={"Cache-Control": "no-store"},
    )
