"""
Sync orchestrator - pulls orders and products from a platform integration
and merges them into the local store.

Flow per entity type:
    watermark -> collect_pages -> transform -> merge -> advance watermark
"""
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.config import settings
from orderhub.core.exceptions import (
    CredentialsMissing,
    IntegrationNotFound,
    MergeFailure,
    SyncInProgress,
    UnsupportedOperation,
)
from orderhub.core.logging import get_logger
from orderhub.core.timeutils import ensure_utc, utcnow
from orderhub.integrations.base import EcommerceIntegration
from orderhub.integrations.pagination import collect_pages
from orderhub.integrations.registry import IntegrationFactory
from orderhub.models.integration import Integration
from orderhub.repositories.credential_vault import CredentialVault
from orderhub.repositories.entity_store import EntityStore
from orderhub.repositories.integration import IntegrationRepository
from orderhub.repositories.store import StoreRepository, WarehouseRepository
from orderhub.repositories.watermark import WatermarkRepository
from orderhub.services.merge import MergeReport, OrderMerger, product_merger
from orderhub.services.warehouse_router import WarehouseRouter

logger = get_logger(__name__)

SYNC_TYPES = ("orders", "products", "all")


# ============================================
# IN-FLIGHT GUARD
# ============================================

class SyncLockRegistry:
    """At most one running sync per (store_id, integration_id)."""

    def __init__(self) -> None:
        self._running: set[tuple[str, str]] = set()

    def is_running(self, store_id: str, integration_id: str) -> bool:
        return (store_id, integration_id) in self._running

    @asynccontextmanager
    async def hold(self, store_id: str, integration_id: str) -> AsyncIterator[None]:
        key = (store_id, integration_id)
        # Check-and-add has no await in between, so it is atomic on the loop
        if key in self._running:
            raise SyncInProgress(store_id, integration_id)
        self._running.add(key)
        try:
            yield
        finally:
            self._running.discard(key)


sync_locks = SyncLockRegistry()


# ============================================
# RESULT
# ============================================

@dataclass
class SyncOutcome:
    success: bool = True
    partial: bool = False
    is_incremental: bool = False
    order_count: Optional[int] = None
    product_count: Optional[int] = None
    orders: Optional[MergeReport] = None
    products: Optional[MergeReport] = None
    errors: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        parts = []
        if self.order_count is not None:
            parts.append(f"{self.order_count} orders")
        if self.product_count is not None:
            parts.append(f"{self.product_count} products")
        synced = " and ".join(parts) or "nothing"
        mode = "incremental" if self.is_incremental else "full"
        if not self.success:
            return f"Sync failed ({mode})"
        if self.partial:
            return f"Partially synced {synced} ({mode})"
        return f"Synced {synced} ({mode})"


def _entities_for(sync_type: str) -> tuple[str, ...]:
    if sync_type not in SYNC_TYPES:
        raise UnsupportedOperation(f"Invalid syncType: {sync_type}")
    return ("orders", "products") if sync_type == "all" else (sync_type,)


def _latest_update(records: list[dict[str, Any]]) -> Optional[datetime]:
    stamps = [ensure_utc(r["source_updated_at"]) for r in records if isinstance(r.get("source_updated_at"), datetime)]
    return max(stamps) if stamps else None


# ============================================
# ORCHESTRATOR
# ============================================

class SyncOrchestrator:
    """
    Runs one sync for one integration against one store.

    Transport and page failures make the outcome partial and leave the
    watermark untouched; merge failures roll back and propagate.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        factory: Optional[IntegrationFactory] = None,
        page_timeout: Optional[float] = None,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
        lock_registry: Optional[SyncLockRegistry] = None,
    ) -> None:
        self.session = session
        self.factory = factory or IntegrationFactory()
        self.page_timeout = page_timeout if page_timeout is not None else settings.sync_page_timeout_seconds
        self.page_size = page_size or settings.sync_page_size
        self.max_pages = max_pages or settings.sync_max_pages
        self.locks = lock_registry or sync_locks

        self.integrations = IntegrationRepository(session)
        self.vault = CredentialVault(session)
        self.watermarks = WatermarkRepository(session)
        self.entities = EntityStore(session)

    async def _build_adapter(
        self,
        integration: Integration,
        credentials_override: Optional[dict[str, Any]],
    ) -> EcommerceIntegration:
        credentials = credentials_override or await self.vault.get(integration.account_id, integration.id)
        if not credentials:
            raise CredentialsMissing(integration.account_id, integration.id)

        adapter = self.factory.create(integration.to_dict(), credentials)
        if adapter is None:
            raise UnsupportedOperation(f"Integration {integration.provider} is not supported")
        if not isinstance(adapter, EcommerceIntegration):
            raise UnsupportedOperation(f"{adapter.display_name} integration does not support order sync")
        adapter.page_size = self.page_size
        return adapter

    async def _router_for(self, store_id: str, account_id: str) -> WarehouseRouter:
        store = await StoreRepository(self.session).get_by_id(store_id)
        active = await WarehouseRepository(self.session).active_ids(account_id)
        return WarehouseRouter(store.warehouse_config if store else None, active)

    async def run(
        self,
        integration_id: str,
        store_id: str,
        sync_type: str = "all",
        *,
        force_full_sync: bool = False,
        warehouse_id: Optional[str] = None,
        credentials_override: Optional[dict[str, Any]] = None,
    ) -> SyncOutcome:
        """
        Raises:
            IntegrationNotFound: no integration with that id
            CredentialsMissing: nothing in the vault and no override
            UnsupportedOperation: bad sync type or a non-platform adapter
            SyncInProgress: a sync for the same store/integration is running
            MergeFailure: the batch could not be written
        """
        entities = _entities_for(sync_type)

        integration = await self.integrations.get_by_id(integration_id)
        if integration is None:
            raise IntegrationNotFound(integration_id)

        adapter = await self._build_adapter(integration, credentials_override)
        outcome = SyncOutcome()

        async with self.locks.hold(store_id, integration.id):
            logger.info(
                "Sync started",
                provider=integration.provider,
                integration_id=integration.id,
                store_id=store_id,
                sync_type=sync_type,
                force_full_sync=force_full_sync,
            )
            for entity_type in entities:
                try:
                    await self._sync_entity(
                        adapter,
                        integration,
                        store_id,
                        entity_type,
                        outcome,
                        force_full_sync=force_full_sync,
                        warehouse_id=warehouse_id,
                    )
                except MergeFailure as e:
                    # The failed batch was rolled back; record the failure on a fresh row
                    await self.session.refresh(integration)
                    integration.last_error = str(e)
                    await self.session.commit()
                    raise

            fetched_anything = any(count for count in (outcome.order_count, outcome.product_count))
            outcome.partial = bool(outcome.errors)
            outcome.success = not outcome.errors or fetched_anything

            integration.last_sync_at = utcnow()
            integration.last_error = "; ".join(outcome.errors) or None
            await self.session.commit()

        logger.info(
            "Sync completed",
            integration_id=integration.id,
            store_id=store_id,
            orders=outcome.order_count,
            products=outcome.product_count,
            partial=outcome.partial,
            incremental=outcome.is_incremental,
        )
        return outcome

    async def _sync_entity(
        self,
        adapter: EcommerceIntegration,
        integration: Integration,
        store_id: str,
        entity_type: str,
        outcome: SyncOutcome,
        *,
        force_full_sync: bool,
        warehouse_id: Optional[str],
    ) -> None:
        since = None if force_full_sync else await self.watermarks.get(integration.id, store_id, entity_type)
        if since is not None:
            outcome.is_incremental = True

        if entity_type == "orders":
            list_page, transform = adapter.list_orders, adapter.transform_order
        else:
            list_page, transform = adapter.list_products, adapter.transform_product

        collection = await collect_pages(
            lambda cursor: list_page(cursor, since),
            page_timeout=self.page_timeout,
            max_pages=self.max_pages,
            label=f"{integration.provider}:{entity_type}",
        )
        partial = collection.partial
        if collection.error:
            outcome.errors.append(f"{entity_type}: {collection.error}")

        records: list[dict[str, Any]] = []
        for raw in collection.items:
            try:
                record = transform(raw, store_id)
            except (KeyError, TypeError, ValueError) as e:
                partial = True
                outcome.errors.append(f"{entity_type}: could not transform record: {e}")
                logger.warning("Record transform failed", entity_type=entity_type, error=str(e))
                continue
            record["integration_id"] = integration.id
            record["account_id"] = integration.account_id
            if entity_type == "orders" and warehouse_id and not record.get("warehouse_id"):
                record["warehouse_id"] = warehouse_id
            records.append(record)

        if entity_type == "orders":
            router = await self._router_for(store_id, integration.account_id)
            report = await OrderMerger().merge(self.entities, store_id, records, route=router)
            outcome.orders = report
            outcome.order_count = len(records)
        else:
            report = await product_merger().merge(self.entities, records, scope={"store_id": store_id})
            outcome.products = report
            outcome.product_count = len(records)

        latest = _latest_update(records)
        if not partial and latest is not None:
            await self.watermarks.advance(integration.id, store_id, entity_type, latest)
        elif partial:
            logger.info("Watermark held after partial sync", entity_type=entity_type, store_id=store_id)

        await self.session.commit()


async def sync_all_enabled(
    session: AsyncSession,
    *,
    factory: Optional[IntegrationFactory] = None,
) -> dict[str, Any]:
    """Sync every enabled, connected platform integration. Failures are logged per integration."""
    integrations = await IntegrationRepository(session).list_enabled_ecommerce()
    orchestrator = SyncOrchestrator(session, factory=factory)
    summary: dict[str, Any] = {"synced": 0, "failed": 0, "skipped": 0}

    for integration in integrations:
        try:
            outcome = await orchestrator.run(integration.id, integration.store_id, "all")
        except SyncInProgress:
            summary["skipped"] += 1
            continue
        except (CredentialsMissing, UnsupportedOperation, MergeFailure) as e:
            logger.error(
                "Scheduled sync failed",
                integration_id=integration.id,
                store_id=integration.store_id,
                error=str(e),
            )
            summary["failed"] += 1
            continue

        if outcome.success:
            summary["synced"] += 1
        else:
            summary["failed"] += 1

    logger.info("Scheduled sync finished", integrations=len(integrations), **summary)
    return summary
