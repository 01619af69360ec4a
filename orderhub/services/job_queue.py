"""
ARQ Job Queue Service - Async Redis-based job queue for background syncs.

Provides:
- On-demand integration sync jobs
- Periodic sync of every enabled platform integration
- Expired OAuth state cleanup
"""
from typing import Any, Optional

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.cron import cron

from orderhub.core.config import settings
from orderhub.core.database import get_db_context
from orderhub.core.exceptions import OrderHubError
from orderhub.core.logging import get_logger
from orderhub.repositories.oauth_state import OAuthStateStore
from orderhub.services.sync import SyncOrchestrator, sync_all_enabled

logger = get_logger(__name__)


def get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from config."""
    redis_url = str(settings.redis_url) if settings.redis_url else "redis://localhost:6379"
    return RedisSettings.from_dsn(redis_url)


# ============================================
# JOB FUNCTIONS
# ============================================

async def sync_integration_job(
    ctx: dict,
    integration_id: str,
    store_id: str,
    sync_type: str = "all",
    force_full_sync: bool = False,
) -> dict[str, Any]:
    """
    Background job to sync one integration into one store.

    Returns:
        Sync summary, or {"error": ...} when the sync could not run
    """
    logger.info("Starting sync job", integration_id=integration_id, store_id=store_id, sync_type=sync_type)

    async with get_db_context() as session:
        try:
            outcome = await SyncOrchestrator(session).run(
                integration_id,
                store_id,
                sync_type,
                force_full_sync=force_full_sync,
            )
        except OrderHubError as e:
            logger.error("Sync job failed", integration_id=integration_id, error=str(e))
            return {"error": str(e)}

    return {
        "success": outcome.success,
        "partial": outcome.partial,
        "order_count": outcome.order_count,
        "product_count": outcome.product_count,
        "message": outcome.message,
    }


async def scheduled_sync_job(ctx: dict) -> dict[str, Any]:
    """
    Periodic job: purge expired OAuth states, then sync every enabled
    connected platform integration.
    """
    if not settings.scheduled_sync_enabled:
        logger.info("Scheduled sync disabled")
        return {"skipped": True}

    async with get_db_context() as session:
        purged = await OAuthStateStore(session).purge_expired()
        await session.commit()
        summary = await sync_all_enabled(session)

    return {**summary, "oauth_states_purged": purged}


# ============================================
# WORKER SETTINGS
# ============================================

def _sync_minutes() -> set[int]:
    interval = max(1, min(settings.scheduled_sync_minute_interval, 60))
    return set(range(0, 60, interval))


class WorkerSettings:
    """ARQ worker configuration."""

    functions = [
        sync_integration_job,
        scheduled_sync_job,
    ]

    cron_jobs = [
        cron(scheduled_sync_job, minute=_sync_minutes(), run_at_startup=False),
    ]

    redis_settings = get_redis_settings()

    # Worker settings
    max_jobs = 10
    job_timeout = 1800  # 30 minutes; full syncs of large stores page slowly
    keep_result = 3600  # 1 hour
    retry_jobs = True
    max_tries = 3


async def create_queue_pool() -> ArqRedis:
    """Create ARQ Redis connection pool."""
    return await create_pool(get_redis_settings())


async def enqueue_sync(
    redis: ArqRedis,
    integration_id: str,
    store_id: str,
    sync_type: str = "all",
    force_full_sync: bool = False,
) -> Optional[str]:
    """
    Queue a sync job. One job id per (store, integration), so a sync that is
    already queued is not queued twice.
    """
    job = await redis.enqueue_job(
        "sync_integration_job",
        integration_id,
        store_id,
        sync_type,
        force_full_sync,
        _job_id=f"sync:{store_id}:{integration_id}",
    )
    if job is None:
        logger.info("Sync already queued", integration_id=integration_id, store_id=store_id)
        return None
    return job.job_id
