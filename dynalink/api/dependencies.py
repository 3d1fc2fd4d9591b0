"""API dependencies for FastAPI.

This module provides dependency injection functions for FastAPI endpoints
to access repositories and service instances. Process-wide clients (session
factory, cache, task runner) are built at startup and read from
``app.state``.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from dynalink.cache.resolution_cache import ResolutionCache
from dynalink.core.config import settings
from dynalink.repositories.link_repository import LinkRepository
from dynalink.repositories.scan_repository import ScanRepository
from dynalink.services.background import BackgroundTaskRunner
from dynalink.services.dispatcher import RedirectDispatcher
from dynalink.services.links import LinkService
from dynalink.services.usage import UsageAggregator


async def get_link_repository():
    """Get an instance of the link repository."""
    return LinkRepository()


async def get_scan_repository():
    """Get an instance of the scan repository."""
    return ScanRepository()


async def get_cache(request: Request) -> ResolutionCache:
    return request.app.state.cache


async def get_task_runner(request: Request) -> BackgroundTaskRunner:
    return request.app.state.task_runner


async def get_session_factory(request: Request) -> async_sessionmaker:
    return request.app.state.session_factory


async def get_link_service(
    link_repo: LinkRepository = Depends(get_link_repository),
    cache: ResolutionCache = Depends(get_cache),
    task_runner: BackgroundTaskRunner = Depends(get_task_runner),
) -> LinkService:
    """Get an instance of the link service."""
    return LinkService(link_repository=link_repo, cache=cache, task_runner=task_runner)


async def get_dispatcher(
    link_repo: LinkRepository = Depends(get_link_repository),
    scan_repo: ScanRepository = Depends(get_scan_repository),
    cache: ResolutionCache = Depends(get_cache),
    task_runner: BackgroundTaskRunner = Depends(get_task_runner),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> RedirectDispatcher:
    """Get an instance of the redirect dispatcher."""
    return RedirectDispatcher(
        link_repository=link_repo,
        scan_repository=scan_repo,
        cache=cache,
        task_runner=task_runner,
        session_factory=session_factory,
    )


async def get_usage_aggregator(
    link_repo: LinkRepository = Depends(get_link_repository),
    scan_repo: ScanRepository = Depends(get_scan_repository),
) -> UsageAggregator:
    """Get an instance of the usage aggregator."""
    return UsageAggregator(link_repository=link_repo, scan_repository=scan_repo)


def get_base_url():
    """Get the base URL for short links."""
    return settings.BASE_URL.rstrip("/")
