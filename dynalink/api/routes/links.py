from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from dynalink.api import schemas
from dynalink.api.dependencies import get_base_url, get_dispatcher, get_link_service
from dynalink.api.errors import APIError
from dynalink.api.params import CodeParam
from dynalink.db.session import get_db
from dynalink.models.link import Link
from dynalink.services.dispatcher import RedirectDispatcher, ResolutionOutcome
from dynalink.services.exceptions import ServiceError, LinkGoneError, LinkNotFoundError
from dynalink.services.links import LinkService

router = APIRouter(tags=["links"])


def _link_response(link: Link, base_url: str) -> schemas.LinkResponse:
    return schemas.LinkResponse(
        code=link.code,
        destination=link.destination,
        short_url=f"{base_url}/{link.code}",
        alias=link.alias,
        created_at=link.created_at,
        updated_at=link.updated_at,
        expires_at=link.expires_at,
    )


@router.post(
    "/links",
    response_model=schemas.LinkResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": schemas.ErrorResponse, "description": "Invalid destination, alias or expiry"},
        409: {"model": schemas.ErrorResponse, "description": "Alias already exists"},
        500: {"model": schemas.ErrorResponse, "description": "Code generation exhausted"},
        503: {"model": schemas.ErrorResponse, "description": "Store unavailable"},
    }
)
async def create_link(
    link_data: schemas.LinkCreateRequest,
    db: AsyncSession = Depends(get_db),
    link_service: LinkService = Depends(get_link_service),
    base_url: str = Depends(get_base_url)
):
    try:
        link = await link_service.create_link(
            db=db,
            destination=link_data.destination,
            alias=link_data.alias,
            expires_at=link_data.expires_at,
        )
    except ServiceError as e:
        raise APIError.from_service_error(e)
    return _link_response(link, base_url)


@router.get(
    "/links/{code}",
    response_model=schemas.LinkResponse,
    responses={404: {"model": schemas.ErrorResponse}}
)
async def get_link(
    code: str = CodeParam(),
    db: AsyncSession = Depends(get_db),
    link_service: LinkService = Depends(get_link_service),
    base_url: str = Depends(get_base_url)
):
    try:
        link = await link_service.get_link(db, code)
    except ServiceError as e:
        raise APIError.from_service_error(e)
    return _link_response(link, base_url)


@router.patch(
    "/links/{code}",
    response_model=schemas.LinkUpdateResponse,
    responses={
        400: {"model": schemas.ErrorResponse, "description": "Invalid destination"},
        404: {"model": schemas.ErrorResponse, "description": "Link not found"},
        503: {"model": schemas.ErrorResponse, "description": "Store unavailable"},
    }
)
async def update_link(
    update_data: schemas.LinkUpdateRequest,
    code: str = CodeParam(),
    db: AsyncSession = Depends(get_db),
    link_service: LinkService = Depends(get_link_service),
):
    """
    Change the destination of a link.

    The response is sent only after the cached destination has been dropped,
    so the next redirect already uses the new destination.
    """
    try:
        link = await link_service.update_destination(db, code, update_data.destination)
    except ServiceError as e:
        raise APIError.from_service_error(e)
    return schemas.LinkUpdateResponse(
        code=link.code,
        destination=link.destination,
        updated_at=link.updated_at,
    )


@router.get(
    "/resolve/{code}",
    response_model=schemas.ResolveResponse,
    responses={
        404: {"model": schemas.ErrorResponse, "description": "Unknown code"},
        410: {"model": schemas.ErrorResponse, "description": "Expired code"},
        503: {"model": schemas.ErrorResponse, "description": "Store unavailable"},
    }
)
async def resolve_code(
    code: str = CodeParam(),
    db: AsyncSession = Depends(get_db),
    dispatcher: RedirectDispatcher = Depends(get_dispatcher),
):
    """Resolve a code for an external router. No scan is recorded."""
    try:
        resolution = await dispatcher.resolve(db, code, record_scan=False)
        if resolution.outcome == ResolutionOutcome.NOT_FOUND:
            raise LinkNotFoundError(f"Link with code '{code}' not found")
        if resolution.outcome == ResolutionOutcome.GONE:
            raise LinkGoneError(f"Link with code '{code}' has expired")
    except ServiceError as e:
        raise APIError.from_service_error(e)

    logger.debug(f"Resolved {code} (cache_hit={resolution.cache_hit})")
    return schemas.ResolveResponse(destination=resolution.destination)
