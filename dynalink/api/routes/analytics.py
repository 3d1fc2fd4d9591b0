"""Usage analytics and scan ingestion endpoints."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from dynalink.api import schemas
from dynalink.api.dependencies import get_dispatcher, get_task_runner, get_usage_aggregator
from dynalink.api.errors import APIError
from dynalink.api.params import CodeParam
from dynalink.db.session import get_db
from dynalink.services.background import BackgroundTaskRunner
from dynalink.services.dispatcher import RedirectDispatcher, ScanContext
from dynalink.services.exceptions import ServiceError
from dynalink.services.usage import UsageAggregator

router = APIRouter(tags=["analytics"])


@router.get(
    "/analytics/{code}",
    response_model=schemas.UsageSnapshotResponse,
    responses={
        404: {"model": schemas.ErrorResponse, "description": "Link not found"},
        503: {"model": schemas.ErrorResponse, "description": "Store unavailable"},
    }
)
async def get_usage(
    code: str = CodeParam(),
    db: AsyncSession = Depends(get_db),
    aggregator: UsageAggregator = Depends(get_usage_aggregator),
):
    """Usage snapshot for a link, computed from its scans on every call."""
    try:
        return await aggregator.get_snapshot(db, code)
    except ServiceError as e:
        raise APIError.from_service_error(e)


@router.post(
    "/scans",
    response_model=schemas.ScanAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def ingest_scan(
    scan: schemas.ScanIngestRequest,
    dispatcher: RedirectDispatcher = Depends(get_dispatcher),
    task_runner: BackgroundTaskRunner = Depends(get_task_runner),
):
    """
    Accept a scan observed by an external router.

    The event is written in the background; write failures are logged and
    never reported to the caller.
    """
    client = ScanContext(
        user_agent=scan.user_agent,
        referrer=scan.referrer,
        country=scan.country,
        city=scan.city,
    )
    task_runner.submit(dispatcher.record_scan(scan.code, client), name="record_scan", code=scan.code)
    return schemas.ScanAcceptedResponse(accepted=True)
