"""Tests for the link service."""

import asyncio
import pytest
from datetime import timedelta
from unittest.mock import patch

from dynalink.core.incident_log import STALE_CACHE_RISK
from dynalink.core.timeutils import to_epoch_ms, utcnow
from dynalink.repositories.base import RepositoryError
from dynalink.services.exceptions import (
    AliasAlreadyExistsError,
    CodeGenerationError,
    InvalidAliasError,
    InvalidDestinationError,
    InvalidExpiryError,
    LinkNotFoundError,
    StoreUnavailableError,
)
from dynalink.services.links import LinkService
from tests.utils import create_test_link


def sequence_generator(*codes):
    """Code generator returning the given codes in order."""
    iterator = iter(codes)
    return lambda: next(iterator)


@pytest.mark.service
class TestLinkService:
    """Test suite for LinkService."""

    @pytest.mark.asyncio
    async def test_create_and_get_round_trip(self, test_db, link_service):
        link = await link_service.create_link(test_db, "https://example.com/landing")

        assert len(link.code) == 7
        assert link.alias is None

        fetched = await link_service.get_link(test_db, link.code)
        assert fetched.destination == "https://example.com/landing"
        assert fetched.created_at == link.created_at

    @pytest.mark.asyncio
    async def test_create_commits(self, test_db, session_factory, link_service):
        link = await link_service.create_link(test_db, "https://example.com")

        async with session_factory() as other_session:
            stored = await link_service.get_link(other_session, link.code)

        assert stored.destination == "https://example.com"

    @pytest.mark.asyncio
    async def test_create_primes_cache(self, test_db, link_service, task_runner, mock_redis):
        link = await link_service.create_link(test_db, "https://example.com")
        await task_runner.drain()

        assert mock_redis.data[f"r:{link.code}"] == "https://example.com"
        assert mock_redis.expiry[f"r:{link.code}"] <= to_epoch_ms(utcnow() + timedelta(seconds=86400))

    @pytest.mark.asyncio
    async def test_primed_entry_bounded_by_expiry(self, test_db, link_service, task_runner, mock_redis):
        expires_at = utcnow() + timedelta(seconds=30)
        link = await link_service.create_link(test_db, "https://example.com", expires_at=expires_at)
        await task_runner.drain()

        assert mock_redis.expiry[f"r:{link.code}"] <= to_epoch_ms(expires_at)

    @pytest.mark.asyncio
    async def test_create_succeeds_when_cache_is_down(self, test_db, link_service, task_runner, mock_redis):
        mock_redis.fail = True

        with patch("dynalink.services.background.report_incident") as report:
            link = await link_service.create_link(test_db, "https://example.com")
            await task_runner.drain()

        assert link.code
        report.assert_called_once()

    @pytest.mark.asyncio
    async def test_create_with_alias(self, test_db, link_service):
        link = await link_service.create_link(test_db, "https://example.com", alias=" promo ")

        assert link.code == "promo"
        assert link.alias == "promo"

    @pytest.mark.asyncio
    async def test_alias_conflict(self, test_db, link_service):
        await link_service.create_link(test_db, "https://example.com", alias="promo")

        with pytest.raises(AliasAlreadyExistsError) as excinfo:
            await link_service.create_link(test_db, "https://example.org", alias="promo")

        assert excinfo.value.status_code == 409
        assert excinfo.value.error_code == "alias_conflict"

    @pytest.mark.asyncio
    async def test_alias_conflicts_with_generated_code(self, test_db, link_service):
        await create_test_link(test_db, code="abc1234")

        with pytest.raises(AliasAlreadyExistsError):
            await link_service.create_link(test_db, "https://example.org", alias="abc1234")

    @pytest.mark.asyncio
    async def test_retries_on_collision(self, test_db, link_repository, cache, task_runner):
        await create_test_link(test_db, code="taken01")
        await create_test_link(test_db, code="taken02")
        service = LinkService(
            link_repository,
            cache,
            task_runner,
            code_generator=sequence_generator("taken01", "taken02", "fresh01"),
        )

        link = await service.create_link(test_db, "https://example.com")

        assert link.code == "fresh01"

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, test_db, link_repository, cache, task_runner):
        await create_test_link(test_db, code="taken01")
        service = LinkService(
            link_repository,
            cache,
            task_runner,
            code_generator=lambda: "taken01",
            max_attempts=3,
        )

        with pytest.raises(CodeGenerationError) as excinfo:
            await service.create_link(test_db, "https://example.com")

        assert str(excinfo.value) == "Failed to generate code"
        assert excinfo.value.status_code == 500

    @pytest.mark.asyncio
    async def test_generator_called_once_per_attempt(self, test_db, link_repository, cache, task_runner):
        await create_test_link(test_db, code="taken01")
        calls = []

        def generator():
            calls.append(1)
            return "taken01"

        service = LinkService(link_repository, cache, task_runner, code_generator=generator, max_attempts=3)

        with pytest.raises(CodeGenerationError):
            await service.create_link(test_db, "https://example.com")

        assert len(calls) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kwargs, error", [
        ({"destination": "not a url"}, InvalidDestinationError),
        ({"destination": "https://example.com", "alias": "far-too-long"}, InvalidAliasError),
        ({"destination": "https://example.com", "alias": "bad alias"}, InvalidAliasError),
    ])
    async def test_create_validation(self, test_db, link_service, kwargs, error):
        with pytest.raises(error):
            await link_service.create_link(test_db, **kwargs)

    @pytest.mark.asyncio
    async def test_create_rejects_past_expiry(self, test_db, link_service):
        with pytest.raises(InvalidExpiryError):
            await link_service.create_link(
                test_db, "https://example.com", expires_at=utcnow() - timedelta(minutes=1)
            )

    @pytest.mark.asyncio
    async def test_create_store_failure(self, test_db, link_service, link_repository):
        async def broken(db, data):
            raise RepositoryError("connection reset")

        link_repository.create_link = broken

        with pytest.raises(StoreUnavailableError):
            await link_service.create_link(test_db, "https://example.com")

    @pytest.mark.asyncio
    async def test_get_link_not_found(self, test_db, link_service):
        with pytest.raises(LinkNotFoundError):
            await link_service.get_link(test_db, "missing")

    @pytest.mark.asyncio
    async def test_get_link_returns_expired(self, test_db, link_service):
        await create_test_link(test_db, code="old1234", expires_at=utcnow() - timedelta(days=1))

        link = await link_service.get_link(test_db, "old1234")

        assert link.code == "old1234"

    @pytest.mark.asyncio
    async def test_update_destination(self, test_db, link_service, mock_redis):
        await create_test_link(test_db, code="upd1234", destination="https://example.com")
        mock_redis.data["r:upd1234"] = "https://example.com"

        link = await link_service.update_destination(test_db, "upd1234", "https://example.org")

        assert link.destination == "https://example.org"
        assert "r:upd1234" not in mock_redis.data
        fetched = await link_service.get_link(test_db, "upd1234")
        assert fetched.destination == "https://example.org"

    @pytest.mark.asyncio
    async def test_update_destination_not_found(self, test_db, link_service):
        with pytest.raises(LinkNotFoundError):
            await link_service.update_destination(test_db, "missing", "https://example.org")

    @pytest.mark.asyncio
    async def test_update_destination_validates(self, test_db, link_service):
        await create_test_link(test_db, code="upd1234")

        with pytest.raises(InvalidDestinationError):
            await link_service.update_destination(test_db, "upd1234", "example.org")

    @pytest.mark.asyncio
    async def test_update_succeeds_when_invalidation_fails(self, test_db, link_service, mock_redis):
        await create_test_link(test_db, code="upd1234", destination="https://example.com")
        mock_redis.data["r:upd1234"] = "https://example.com"
        mock_redis.fail = True

        with patch("dynalink.services.links.report_incident") as report:
            link = await link_service.update_destination(test_db, "upd1234", "https://example.org")

        assert link.destination == "https://example.org"
        report.assert_called_once()
        assert report.call_args.args[0] == STALE_CACHE_RISK
        assert report.call_args.args[1] == "upd1234"

        mock_redis.fail = False
        stored = await link_service.get_link(test_db, "upd1234")
        assert stored.destination == "https://example.org"

    @pytest.mark.asyncio
    async def test_late_cache_write_cannot_restore_old_destination(self, test_db, link_service, cache, dispatcher):
        link = await create_test_link(test_db, code="upd1234", destination="https://example.com")
        old_destination, old_version = link.destination, link.updated_at
        await asyncio.sleep(0.01)

        await link_service.update_destination(test_db, "upd1234", "https://example.org")
        # A resolution that read the link before the update writes afterwards
        written = await cache.set("upd1234", old_destination, version=old_version)

        assert written is False
        assert await cache.get("upd1234") is None
        resolution = await dispatcher.resolve(test_db, "upd1234", record_scan=False)
        assert resolution.destination == "https://example.org"
