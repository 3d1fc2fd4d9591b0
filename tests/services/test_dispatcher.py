"""Tests for redirect resolution."""

import asyncio
import pytest
from datetime import timedelta
from unittest.mock import patch

from dynalink.core.timeutils import to_epoch_ms, utcnow
from dynalink.models.scan import CITY_MAX_LENGTH, REFERRER_MAX_LENGTH, USER_AGENT_MAX_LENGTH
from dynalink.repositories.base import RepositoryError
from dynalink.services.dispatcher import RedirectDispatcher, ResolutionOutcome, ScanContext
from dynalink.services.exceptions import StoreUnavailableError
from tests.utils import IPHONE_UA, create_test_link


async def scan_count(scan_repository, session_factory, code):
    async with session_factory() as session:
        return await scan_repository.count_for_code(session, code)


@pytest.mark.service
class TestRedirectDispatcher:
    """Test suite for RedirectDispatcher."""

    @pytest.mark.asyncio
    async def test_cache_miss_reads_store_and_populates_cache(self, test_db, dispatcher, task_runner, mock_redis):
        await create_test_link(test_db, code="abc1234", destination="https://example.com")

        resolution = await dispatcher.resolve(test_db, "abc1234")
        await task_runner.drain()

        assert resolution.outcome == ResolutionOutcome.REDIRECT
        assert resolution.destination == "https://example.com"
        assert resolution.cache_hit is False
        assert mock_redis.data["r:abc1234"] == "https://example.com"

    @pytest.mark.asyncio
    async def test_cache_hit_skips_store(self, test_db, dispatcher, link_repository, mock_redis):
        mock_redis.data["r:abc1234"] = "https://cached.example.com"

        async def unreachable(db, code):
            raise AssertionError("store should not be read on a cache hit")

        link_repository.get_by_code = unreachable

        resolution = await dispatcher.resolve(test_db, "abc1234", record_scan=False)

        assert resolution.outcome == ResolutionOutcome.REDIRECT
        assert resolution.destination == "https://cached.example.com"
        assert resolution.cache_hit is True

    @pytest.mark.asyncio
    async def test_second_resolution_is_a_cache_hit(self, test_db, dispatcher, task_runner):
        await create_test_link(test_db, code="abc1234", destination="https://example.com")

        first = await dispatcher.resolve(test_db, "abc1234", record_scan=False)
        await task_runner.drain()
        second = await dispatcher.resolve(test_db, "abc1234", record_scan=False)

        assert first.cache_hit is False
        assert second.cache_hit is True
        assert second.destination == "https://example.com"

    @pytest.mark.asyncio
    async def test_unknown_code(self, test_db, dispatcher, task_runner, mock_redis):
        resolution = await dispatcher.resolve(test_db, "missing")
        await task_runner.drain()

        assert resolution.outcome == ResolutionOutcome.NOT_FOUND
        assert resolution.destination is None
        assert "r:missing" not in mock_redis.data

    @pytest.mark.asyncio
    async def test_expired_link_is_gone(self, test_db, dispatcher, task_runner, mock_redis):
        await create_test_link(test_db, code="old1234", expires_at=utcnow() - timedelta(seconds=1))

        resolution = await dispatcher.resolve(test_db, "old1234")
        await task_runner.drain()

        assert resolution.outcome == ResolutionOutcome.GONE
        assert resolution.destination is None
        assert "r:old1234" not in mock_redis.data

    @pytest.mark.asyncio
    async def test_expiry_is_checked_against_now(self, test_db, dispatcher):
        expires_at = utcnow() + timedelta(hours=1)
        await create_test_link(test_db, code="soon123", expires_at=expires_at)

        before = await dispatcher.resolve(test_db, "soon123", record_scan=False, now=expires_at - timedelta(seconds=1))
        at = await dispatcher.resolve(test_db, "soon123", record_scan=False, now=expires_at)

        assert before.outcome == ResolutionOutcome.REDIRECT
        assert at.outcome == ResolutionOutcome.GONE

    @pytest.mark.asyncio
    async def test_cached_entry_never_outlives_expiry(self, test_db, dispatcher, task_runner, mock_redis):
        expires_at = utcnow() + timedelta(seconds=30)
        await create_test_link(test_db, code="brief12", expires_at=expires_at)

        await dispatcher.resolve(test_db, "brief12", record_scan=False)
        await task_runner.drain()

        assert mock_redis.expiry["r:brief12"] <= to_epoch_ms(expires_at)

    @pytest.mark.asyncio
    async def test_slow_cache_write_still_dies_at_expiry(self, test_db, dispatcher, task_runner, mock_redis):
        now = utcnow()
        expires_at = now + timedelta(seconds=2, milliseconds=3)
        await create_test_link(test_db, code="brief12", expires_at=expires_at)

        resolution = await dispatcher.resolve(test_db, "brief12", record_scan=False, now=now)
        # Slower than the dropped fraction of a second, under the cache timeout
        mock_redis.delay = 0.1
        await task_runner.drain()

        assert resolution.outcome == ResolutionOutcome.REDIRECT
        assert mock_redis.data["r:brief12"] == resolution.destination
        assert mock_redis.expiry["r:brief12"] == to_epoch_ms(now + timedelta(seconds=2))
        assert mock_redis.expiry["r:brief12"] <= to_epoch_ms(expires_at)

    @pytest.mark.asyncio
    async def test_nearly_expired_link_is_not_cached(self, test_db, dispatcher, task_runner, mock_redis):
        now = utcnow()
        await create_test_link(test_db, code="brief12", expires_at=now + timedelta(milliseconds=500))

        resolution = await dispatcher.resolve(test_db, "brief12", record_scan=False, now=now)
        await task_runner.drain()

        assert resolution.outcome == ResolutionOutcome.REDIRECT
        assert "r:brief12" not in mock_redis.data

    @pytest.mark.asyncio
    async def test_cache_outage_falls_back_to_store(self, test_db, dispatcher, task_runner, mock_redis):
        await create_test_link(test_db, code="abc1234", destination="https://example.com")
        mock_redis.fail = True

        resolution = await dispatcher.resolve(test_db, "abc1234", record_scan=False)
        await task_runner.drain()

        assert resolution.outcome == ResolutionOutcome.REDIRECT
        assert resolution.destination == "https://example.com"
        assert resolution.cache_hit is False

    @pytest.mark.asyncio
    async def test_slow_cache_falls_back_to_store(self, test_db, dispatcher, task_runner, mock_redis):
        await create_test_link(test_db, code="abc1234", destination="https://example.com")
        mock_redis.data["r:abc1234"] = "https://stale.example.com"
        mock_redis.delay = 1.0

        resolution = await dispatcher.resolve(test_db, "abc1234", record_scan=False)

        assert resolution.destination == "https://example.com"
        assert resolution.cache_hit is False

    @pytest.mark.asyncio
    async def test_store_failure(self, test_db, dispatcher, link_repository):
        async def broken(db, code):
            raise RepositoryError("connection reset")

        link_repository.get_by_code = broken

        with pytest.raises(StoreUnavailableError):
            await dispatcher.resolve(test_db, "abc1234")

    @pytest.mark.asyncio
    async def test_store_timeout(
        self, test_db, link_repository, scan_repository, cache, task_runner, session_factory
    ):
        async def slow(db, code):
            await asyncio.sleep(1)

        link_repository.get_by_code = slow
        dispatcher = RedirectDispatcher(
            link_repository,
            scan_repository,
            cache,
            task_runner,
            session_factory,
            store_timeout=0.05,
        )

        with pytest.raises(StoreUnavailableError) as excinfo:
            await dispatcher.resolve(test_db, "abc1234")

        assert excinfo.value.status_code == 503

    @pytest.mark.asyncio
    async def test_records_scan_with_client_metadata(
        self, test_db, dispatcher, task_runner, scan_repository, session_factory
    ):
        await create_test_link(test_db, code="abc1234")
        client = ScanContext(user_agent=IPHONE_UA, referrer="https://t.co/x", country="US", city="Austin")

        await dispatcher.resolve(test_db, "abc1234", client=client)
        await task_runner.drain()

        async with session_factory() as session:
            recent = await scan_repository.get_recent(session, "abc1234")

        assert len(recent) == 1
        assert recent[0].user_agent == IPHONE_UA
        assert recent[0].referrer == "https://t.co/x"
        assert recent[0].country == "US"
        assert recent[0].city == "Austin"

    @pytest.mark.asyncio
    async def test_cache_hit_records_scan(self, test_db, dispatcher, task_runner, scan_repository, session_factory):
        await create_test_link(test_db, code="abc1234")

        await dispatcher.resolve(test_db, "abc1234")
        await task_runner.drain()
        hit = await dispatcher.resolve(test_db, "abc1234")
        await task_runner.drain()

        assert hit.cache_hit is True
        assert await scan_count(scan_repository, session_factory, "abc1234") == 2

    @pytest.mark.asyncio
    async def test_no_scan_when_disabled(self, test_db, dispatcher, task_runner, scan_repository, session_factory):
        await create_test_link(test_db, code="abc1234")

        await dispatcher.resolve(test_db, "abc1234", record_scan=False)
        await task_runner.drain()

        assert await scan_count(scan_repository, session_factory, "abc1234") == 0

    @pytest.mark.asyncio
    async def test_no_scan_for_missing_or_expired(
        self, test_db, dispatcher, task_runner, scan_repository, session_factory
    ):
        await create_test_link(test_db, code="old1234", expires_at=utcnow() - timedelta(days=1))

        await dispatcher.resolve(test_db, "missing")
        await dispatcher.resolve(test_db, "old1234")
        await task_runner.drain()

        assert await scan_count(scan_repository, session_factory, "old1234") == 0
        assert await scan_count(scan_repository, session_factory, "missing") == 0

    @pytest.mark.asyncio
    async def test_scan_failure_does_not_change_outcome(self, test_db, dispatcher, task_runner, scan_repository):
        await create_test_link(test_db, code="abc1234", destination="https://example.com")

        async def broken(db, data):
            raise RepositoryError("disk full")

        scan_repository.record_scan = broken

        with patch("dynalink.services.background.report_incident") as report:
            resolution = await dispatcher.resolve(test_db, "abc1234")
            await task_runner.drain()

        assert resolution.outcome == ResolutionOutcome.REDIRECT
        report.assert_called_once()


class TestScanContext:

    def test_values_are_cut_to_column_width(self):
        client = ScanContext(
            user_agent="u" * 5000,
            referrer="r" * 5000,
            country="United States",
            city="c" * 500,
        )

        assert len(client.user_agent) == USER_AGENT_MAX_LENGTH
        assert len(client.referrer) == REFERRER_MAX_LENGTH
        assert client.country == "United S"
        assert len(client.city) == CITY_MAX_LENGTH

    def test_short_and_missing_values_are_kept(self):
        client = ScanContext(user_agent=IPHONE_UA, country="US")

        assert client.user_agent == IPHONE_UA
        assert client.country == "US"
        assert client.referrer is None
        assert client.city is None
