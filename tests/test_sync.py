"""
Tests for the sync orchestrator.
"""
import json
from datetime import datetime, timezone

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.exceptions import CredentialsMissing, IntegrationNotFound, SyncInProgress, UnsupportedOperation
from orderhub.integrations.registry import IntegrationFactory
from orderhub.models.integration import Integration
from orderhub.repositories.credential_vault import CredentialVault
from orderhub.repositories.entity_store import EntityStore
from orderhub.repositories.watermark import WatermarkRepository
from orderhub.services.sync import SyncLockRegistry, SyncOrchestrator, SyncOutcome, sync_all_enabled

from conftest import ACCOUNT_ID, STORE_ID


def product_nodes(start: int, count: int) -> list[dict]:
    return [
        {
            "cursor": f"c{n}",
            "node": {
                "id": f"gid://shopify/Product/{n}",
                "title": f"Product {n}",
                "status": "ACTIVE",
                "updatedAt": f"2024-03-{1 + n % 28:02d}T12:00:00Z",
            },
        }
        for n in range(start, start + count)
    ]


def order_nodes(start: int, count: int) -> list[dict]:
    return [
        {
            "cursor": f"o{n}",
            "node": {
                "id": f"gid://shopify/Order/{n}",
                "name": f"#{n}",
                "updatedAt": "2024-03-05T08:00:00Z",
                "shippingAddress": {"provinceCode": "NY", "countryCodeV2": "US"},
            },
        }
        for n in range(start, start + count)
    ]


def connection(root: str, edges: list[dict], has_next: bool, end_cursor=None) -> dict:
    return {"data": {root: {"edges": edges, "pageInfo": {"hasNextPage": has_next, "endCursor": end_cursor}}}}


class FakeShopify:
    """Shopify GraphQL endpoint serving scripted pages per root field."""

    def __init__(self, products=None, orders=None) -> None:
        self.pages = {"products": list(products or []), "orders": list(orders or [])}
        self.requests: dict[str, list[dict]] = {"products": [], "orders": []}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        root = "products" if "GetProducts" in body["query"] else "orders"
        self.requests[root].append(body.get("variables") or {})
        served = len(self.requests[root]) - 1
        pages = self.pages[root]
        if served >= len(pages):
            return httpx.Response(200, json=connection(root, [], False))
        page = pages[served]
        if isinstance(page, httpx.Response):
            return page
        return httpx.Response(200, json=page)

    def orchestrator(self, session: AsyncSession, **kwargs) -> SyncOrchestrator:
        kwargs.setdefault("lock_registry", SyncLockRegistry())
        kwargs.setdefault("max_pages", 20)
        return SyncOrchestrator(
            session,
            factory=IntegrationFactory(transport=httpx.MockTransport(self)),
            page_timeout=5,
            page_size=50,
            **kwargs,
        )


def two_product_pages() -> list[dict]:
    return [
        connection("products", product_nodes(0, 50), True, "p1"),
        connection("products", product_nodes(50, 50), True, "p2"),
        connection("products", [], False),
    ]


class TestSyncOrchestrator:
    async def test_pages_until_empty_and_merges_everything(
        self, session: AsyncSession, shopify_integration: Integration
    ):
        shopify = FakeShopify(products=two_product_pages())

        outcome = await shopify.orchestrator(session).run(shopify_integration.id, STORE_ID, "products")

        products = await EntityStore(session).list("products", {"store_id": STORE_ID})
        assert len(shopify.requests["products"]) == 3
        assert len(products) == 100
        assert outcome.success and not outcome.partial
        assert outcome.product_count == 100
        assert outcome.message == "Synced 100 products (full)"
        assert {p["integration_id"] for p in products} == {shopify_integration.id}

    async def test_watermark_drives_incremental_sync(
        self, session: AsyncSession, shopify_integration: Integration
    ):
        shopify = FakeShopify(products=two_product_pages())
        await shopify.orchestrator(session).run(shopify_integration.id, STORE_ID, "products")

        watermark = await WatermarkRepository(session).get(shopify_integration.id, STORE_ID, "products")
        assert watermark == datetime(2024, 3, 28, 12, tzinfo=timezone.utc)

        again = FakeShopify()
        outcome = await again.orchestrator(session).run(shopify_integration.id, STORE_ID, "products")

        assert outcome.is_incremental
        assert again.requests["products"][0]["query"] == "updated_at:>='2024-03-28T12:00:00Z'"
        assert outcome.message == "Synced 0 products (incremental)"

    async def test_force_full_sync_ignores_watermark(
        self, session: AsyncSession, shopify_integration: Integration
    ):
        await WatermarkRepository(session).advance(
            shopify_integration.id, STORE_ID, "products", datetime(2024, 1, 1, tzinfo=timezone.utc)
        )
        await session.commit()
        shopify = FakeShopify()

        outcome = await shopify.orchestrator(session).run(
            shopify_integration.id, STORE_ID, "products", force_full_sync=True
        )

        assert not outcome.is_incremental
        assert shopify.requests["products"][0].get("query") is None

    async def test_failed_page_holds_watermark(self, session: AsyncSession, shopify_integration: Integration):
        shopify = FakeShopify(products=[
            connection("products", product_nodes(0, 50), True, "p1"),
            httpx.Response(500, text="boom"),
        ])

        outcome = await shopify.orchestrator(session).run(shopify_integration.id, STORE_ID, "products")

        assert outcome.partial
        assert outcome.success
        assert outcome.message.startswith("Partially synced 50 products")
        assert len(await EntityStore(session).list("products", {"store_id": STORE_ID})) == 50
        assert await WatermarkRepository(session).get(shopify_integration.id, STORE_ID, "products") is None
        assert "HTTP error: 500" in shopify_integration.last_error

    async def test_first_page_failure_is_not_success(
        self, session: AsyncSession, shopify_integration: Integration
    ):
        shopify = FakeShopify(products=[httpx.Response(401, text="unauthorized")])

        outcome = await shopify.orchestrator(session).run(shopify_integration.id, STORE_ID, "products")

        assert not outcome.success
        assert outcome.message == "Sync failed (full)"

    async def test_non_json_page_is_reported_not_raised(
        self, session: AsyncSession, shopify_integration: Integration
    ):
        shopify = FakeShopify(products=[httpx.Response(200, text="<html>maintenance</html>")])

        outcome = await shopify.orchestrator(session).run(shopify_integration.id, STORE_ID, "products")

        assert not outcome.success
        assert "Invalid JSON response" in outcome.errors[0]
        assert await EntityStore(session).list("products", {"store_id": STORE_ID}) == []

    async def test_page_cap_holds_watermark(self, session: AsyncSession, shopify_integration: Integration):
        shopify = FakeShopify(products=[
            connection("products", product_nodes(0, 50), True, "p1"),
            connection("products", product_nodes(50, 50), True, "p2"),
            connection("products", product_nodes(100, 50), True, "p3"),
        ])

        outcome = await shopify.orchestrator(session, max_pages=2).run(
            shopify_integration.id, STORE_ID, "products"
        )

        assert len(shopify.requests["products"]) == 2
        assert outcome.success
        assert outcome.partial
        assert outcome.product_count == 100
        assert await WatermarkRepository(session).get(shopify_integration.id, STORE_ID, "products") is None

    async def test_orders_are_routed_and_tagged(
        self, session: AsyncSession, shopify_integration: Integration, warehouses
    ):
        shopify = FakeShopify(orders=[connection("orders", order_nodes(1, 2), False)])

        outcome = await shopify.orchestrator(session).run(
            shopify_integration.id, STORE_ID, "orders", warehouse_id="W1"
        )

        orders = await EntityStore(session).list("orders", {"store_id": STORE_ID})
        assert outcome.order_count == 2
        assert {o["warehouse_id"] for o in orders} == {"W1"}
        assert {o["account_id"] for o in orders} == {ACCOUNT_ID}

    async def test_sync_all_runs_both_entity_types(
        self, session: AsyncSession, shopify_integration: Integration
    ):
        shopify = FakeShopify(
            products=[connection("products", product_nodes(0, 3), False)],
            orders=[connection("orders", order_nodes(1, 1), False)],
        )

        outcome = await shopify.orchestrator(session).run(shopify_integration.id, STORE_ID)

        assert outcome.message == "Synced 1 orders and 3 products (full)"
        assert shopify_integration.last_sync_at is not None
        assert shopify_integration.last_error is None

    async def test_credentials_override_is_used(self, session: AsyncSession, shopify_integration: Integration):
        tokens = []

        def handler(request: httpx.Request) -> httpx.Response:
            tokens.append(request.headers["x-shopify-access-token"])
            return httpx.Response(200, json=connection("orders", [], False))

        orchestrator = SyncOrchestrator(
            session,
            factory=IntegrationFactory(transport=httpx.MockTransport(handler)),
            lock_registry=SyncLockRegistry(),
        )

        await orchestrator.run(
            shopify_integration.id, STORE_ID, "orders", credentials_override={"access_token": "shpat_override"}
        )

        assert tokens == ["shpat_override"]
        stored = await CredentialVault(session).get(ACCOUNT_ID, shopify_integration.id)
        assert stored == {"access_token": "shpat_test"}

    async def test_concurrent_sync_is_rejected(self, session: AsyncSession, shopify_integration: Integration):
        locks = SyncLockRegistry()
        orchestrator = FakeShopify().orchestrator(session, lock_registry=locks)

        async with locks.hold(STORE_ID, shopify_integration.id):
            with pytest.raises(SyncInProgress):
                await orchestrator.run(shopify_integration.id, STORE_ID)

        assert not locks.is_running(STORE_ID, shopify_integration.id)

    async def test_missing_credentials(self, session: AsyncSession, shopify_integration: Integration):
        await CredentialVault(session).clear(ACCOUNT_ID, shopify_integration.id)

        with pytest.raises(CredentialsMissing):
            await FakeShopify().orchestrator(session).run(shopify_integration.id, STORE_ID)

    async def test_unknown_integration(self, session: AsyncSession):
        with pytest.raises(IntegrationNotFound):
            await FakeShopify().orchestrator(session).run("missing", STORE_ID)

    async def test_invalid_sync_type(self, session: AsyncSession, shopify_integration: Integration):
        with pytest.raises(UnsupportedOperation, match="Invalid syncType"):
            await FakeShopify().orchestrator(session).run(shopify_integration.id, STORE_ID, "customers")


class TestSyncOutcome:
    def test_message_variants(self):
        assert SyncOutcome(order_count=3).message == "Synced 3 orders (full)"
        assert SyncOutcome(product_count=2, partial=True, is_incremental=True).message == (
            "Partially synced 2 products (incremental)"
        )
        assert SyncOutcome(success=False).message == "Sync failed (full)"


async def test_sync_all_enabled(session: AsyncSession, shopify_integration: Integration):
    shopify = FakeShopify(products=[connection("products", product_nodes(0, 2), False)])

    summary = await sync_all_enabled(session, factory=IntegrationFactory(transport=httpx.MockTransport(shopify)))

    assert summary == {"synced": 1, "failed": 0, "skipped": 0}
    assert len(await EntityStore(session).list("products", {"store_id": STORE_ID})) == 2
