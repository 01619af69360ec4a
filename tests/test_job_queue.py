"""
Tests for background sync jobs.
"""
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.services import job_queue
from orderhub.services.job_queue import (
    WorkerSettings,
    enqueue_sync,
    scheduled_sync_job,
    sync_integration_job,
)


def session_context(session: AsyncSession):
    @asynccontextmanager
    async def context():
        yield session

    return context


def test_cron_runs_every_interval():
    with patch.object(job_queue.settings, "scheduled_sync_minute_interval", 15):
        assert job_queue._sync_minutes() == {0, 15, 30, 45}

    assert WorkerSettings.cron_jobs[0].coroutine is scheduled_sync_job


async def test_enqueue_uses_stable_job_id():
    redis = MagicMock()
    redis.enqueue_job = AsyncMock(return_value=MagicMock(job_id="sync:store-1:int-1"))

    job_id = await enqueue_sync(redis, "int-1", "store-1", "orders")

    assert job_id == "sync:store-1:int-1"
    redis.enqueue_job.assert_awaited_once_with(
        "sync_integration_job",
        "int-1",
        "store-1",
        "orders",
        False,
        _job_id="sync:store-1:int-1",
    )


async def test_enqueue_skips_already_queued_sync():
    redis = MagicMock()
    redis.enqueue_job = AsyncMock(return_value=None)

    assert await enqueue_sync(redis, "int-1", "store-1") is None


async def test_sync_job_reports_domain_errors(session: AsyncSession):
    with patch.object(job_queue, "get_db_context", session_context(session)):
        result = await sync_integration_job({}, "missing", "store-1")

    assert result == {"error": "Integration not found: missing"}


async def test_scheduled_sync_can_be_disabled():
    with patch.object(job_queue.settings, "scheduled_sync_enabled", False):
        assert await scheduled_sync_job({}) == {"skipped": True}


async def test_scheduled_sync_with_nothing_enabled(session: AsyncSession):
    with patch.object(job_queue, "get_db_context", session_context(session)):
        result = await scheduled_sync_job({})

    assert result == {"synced": 0, "failed": 0, "skipped": 0, "oauth_states_purged": 0}
