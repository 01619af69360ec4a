"""
Tests for the integration registry, factory and platform/carrier adapters.
"""
import json
from datetime import datetime, timezone

import httpx
import pytest

from orderhub.core.exceptions import IntegrationAPIError, UnsupportedOperation
from orderhub.integrations.base import EcommerceIntegration, ShippingIntegration
from orderhub.integrations.registry import IntegrationFactory, IntegrationRegistry, registry
from orderhub.integrations.shopify import ShopifyIntegration, gid_to_id, weight_to_ounces
from orderhub.integrations.ups import UPSIntegration
from orderhub.integrations.usps import USPSIntegration
from orderhub.integrations.woocommerce import WooCommerceIntegration

SHOPIFY_RECORD = {
    "id": "int-shopify",
    "name": "Shopify",
    "type": "ecommerce",
    "provider": "shopify",
    "store_id": "store-1",
    "account_id": "acct-1",
    "config": {"shop_domain": "test-shop.myshopify.com", "api_version": "2024-01"},
}

WOO_RECORD = {
    "id": "int-woo",
    "name": "WooCommerce",
    "type": "ecommerce",
    "provider": "woocommerce",
    "store_id": "store-1",
    "account_id": "acct-1",
    "config": {"store_url": "https://shop.example.com/", "weight_unit": "lbs"},
}

UPS_RECORD = {
    "id": "int-ups",
    "name": "UPS",
    "type": "shipping",
    "provider": "ups",
    "account_id": "acct-1",
    "config": {"account_number": "A1B2C3", "environment": "sandbox"},
}

USPS_RECORD = {
    "id": "int-usps",
    "name": "USPS",
    "type": "shipping",
    "provider": "usps",
    "account_id": "acct-1",
    "config": {"environment": "sandbox"},
}

RAW_SHOPIFY_ORDER = {
    "id": "gid://shopify/Order/1001",
    "name": "#1001",
    "email": "ada@example.com",
    "createdAt": "2024-03-01T10:00:00Z",
    "updatedAt": "2024-03-02T10:00:00Z",
    "currencyCode": "USD",
    "displayFinancialStatus": "PAID",
    "displayFulfillmentStatus": "UNFULFILLED",
    "totalPriceSet": {"shopMoney": {"amount": "42.50", "currencyCode": "USD"}},
    "customer": {"firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com"},
    "shippingAddress": {
        "firstName": "Ada",
        "lastName": "Lovelace",
        "address1": "1 Main St",
        "city": "Albany",
        "province": "New York",
        "provinceCode": "NY",
        "zip": "12207",
        "country": "United States",
        "countryCodeV2": "US",
    },
    "shippingLines": {"edges": [{"node": {"title": "Ground"}}]},
    "fulfillments": [],
    "lineItems": {
        "edges": [
            {
                "node": {
                    "id": "gid://shopify/LineItem/5",
                    "name": "Mug - Blue",
                    "sku": "MUG-B",
                    "quantity": 2,
                    "variantTitle": "Blue",
                    "originalUnitPriceSet": {"shopMoney": {"amount": "21.25", "currencyCode": "USD"}},
                }
            }
        ]
    },
}


def graphql_products(count: int, start: int = 0, has_next: bool = False, end_cursor: str = "") -> dict:
    return {
        "data": {
            "products": {
                "edges": [
                    {"cursor": f"c{n}", "node": {"id": f"gid://shopify/Product/{n}", "title": f"P{n}"}}
                    for n in range(start, start + count)
                ],
                "pageInfo": {"hasNextPage": has_next, "endCursor": end_cursor or None},
            }
        }
    }


class TestRegistry:
    def test_default_providers(self):
        assert registry.names() == ["shopify", "ups", "usps", "woocommerce"]

    def test_lookup_is_case_insensitive(self):
        assert registry.get("Shopify") is ShopifyIntegration
        assert registry.has("UPS")
        assert registry.get("etsy") is None

    def test_register_and_unregister(self):
        local = IntegrationRegistry()
        local.register("Custom", ShopifyIntegration)

        assert local.has("custom")
        local.unregister("CUSTOM")
        assert local.names() == []


class TestFactory:
    def test_creates_adapter_for_each_type(self):
        factory = IntegrationFactory()

        shopify = factory.create(SHOPIFY_RECORD, {"access_token": "t"})
        ups = factory.create(UPS_RECORD)

        assert isinstance(shopify, EcommerceIntegration)
        assert isinstance(ups, ShippingIntegration)
        assert shopify.store_id == "store-1"
        assert shopify.supports_feature("orderSync")
        assert not ups.supports_feature("orderSync")

    def test_unknown_provider_returns_none(self):
        assert IntegrationFactory().create({**SHOPIFY_RECORD, "provider": "etsy"}) is None

    def test_invalid_config_returns_none(self):
        record = {**SHOPIFY_RECORD, "config": {"api_version": "2024-01"}}

        assert IntegrationFactory().create(record) is None

    def test_filters_by_type(self):
        factory = IntegrationFactory()

        assert [a.provider for a in factory.ecommerce([SHOPIFY_RECORD, UPS_RECORD])] == ["shopify"]
        assert [a.provider for a in factory.shipping([SHOPIFY_RECORD, UPS_RECORD])] == ["ups"]


class TestShopifyIntegration:
    def test_helpers(self):
        assert gid_to_id("gid://shopify/Order/123") == "123"
        assert weight_to_ounces(1, "POUNDS") == 16.0
        assert weight_to_ounces(None, "POUNDS") == 0.0

    def test_transform_order(self):
        order = IntegrationFactory().create(SHOPIFY_RECORD).transform_order(RAW_SHOPIFY_ORDER, "store-1")

        assert order["id"] == "shopify-1001"
        assert order["external_id"] == "1001"
        assert order["customer_name"] == "Ada Lovelace"
        assert order["total_amount"] == 42.5
        assert order["financial_status"] == "paid"
        assert order["shipping_province"] == "NY"
        assert order["item_count"] == 2
        assert order["requested_shipping"] == "Ground"
        assert order["source_updated_at"] == datetime(2024, 3, 2, 10, tzinfo=timezone.utc)

    def test_transform_minimal_order(self):
        order = IntegrationFactory().create(SHOPIFY_RECORD).transform_order({"id": "gid://shopify/Order/7"}, "s")

        assert order["customer_name"] == "Unknown Customer"
        assert order["order_number"] == "#7"
        assert order["line_items"] == []

    async def test_list_products_sends_incremental_filter(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.headers["x-shopify-access-token"], json.loads(request.content)))
            return httpx.Response(200, json=graphql_products(2, has_next=True, end_cursor="c1"))

        adapter = IntegrationFactory(transport=httpx.MockTransport(handler)).create(
            SHOPIFY_RECORD, {"access_token": "shpat_x"}
        )

        page = await adapter.list_products(None, datetime(2024, 1, 1, tzinfo=timezone.utc))

        token, body = seen[0]
        assert token == "shpat_x"
        assert body["variables"]["query"].startswith("updated_at:>=")
        assert len(page.items) == 2
        assert page.next_cursor == "c1"

    async def test_graphql_errors_raise(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"errors": [{"message": "Throttled"}]}))
        adapter = IntegrationFactory(transport=transport).create(SHOPIFY_RECORD, {"access_token": "t"})

        with pytest.raises(IntegrationAPIError, match="Throttled"):
            await adapter.list_orders()

    async def test_missing_token_raises(self):
        adapter = IntegrationFactory().create(SHOPIFY_RECORD)

        with pytest.raises(IntegrationAPIError):
            await adapter.list_orders()

    async def test_sync_products_collects_all_pages(self):
        pages = [
            graphql_products(50, 0, has_next=True, end_cursor="p1"),
            graphql_products(50, 50, has_next=True, end_cursor="p2"),
            graphql_products(0, 100),
        ]
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=pages[len(requests) - 1])

        adapter = IntegrationFactory(transport=httpx.MockTransport(handler)).create(
            SHOPIFY_RECORD, {"access_token": "t"}
        )

        result = await adapter.sync_products()

        assert result.success
        assert result.count == 100
        assert len(requests) == 3

    async def test_non_json_reply_fails_the_sync(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, text="<html>maintenance</html>"))
        adapter = IntegrationFactory(transport=transport).create(SHOPIFY_RECORD, {"access_token": "t"})

        with pytest.raises(IntegrationAPIError, match="Invalid JSON response"):
            await adapter.list_orders()
        result = await adapter.sync_orders()

        assert not result.success
        assert "Invalid JSON response" in result.error

    async def test_connection_test_reports_shop(self):
        transport = httpx.MockTransport(
            lambda r: httpx.Response(200, json={"data": {"shop": {"name": "Test Shop"}}})
        )
        adapter = IntegrationFactory(transport=transport).create(SHOPIFY_RECORD, {"access_token": "t"})

        result = await adapter.test_connection()

        assert result.success
        assert result.message == "Connected to Test Shop"


class TestWooCommerceIntegration:
    async def test_list_orders_uses_page_numbers(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"id": 1}, {"id": 2}], headers={"X-WP-TotalPages": "3"})

        adapter = IntegrationFactory(transport=httpx.MockTransport(handler)).create(
            WOO_RECORD, {"consumer_key": "ck", "consumer_secret": "cs"}
        )

        page = await adapter.list_orders("2")

        request = seen[0]
        assert request.url.path == "/wp-json/wc/v3/orders"
        assert request.url.params["page"] == "2"
        assert request.headers["authorization"].startswith("Basic ")
        assert page.next_cursor == "3"

    async def test_last_page_has_no_cursor(self):
        transport = httpx.MockTransport(
            lambda r: httpx.Response(200, json=[{"id": 1}], headers={"X-WP-TotalPages": "1"})
        )
        adapter = IntegrationFactory(transport=transport).create(
            WOO_RECORD, {"consumer_key": "ck", "consumer_secret": "cs"}
        )

        page = await adapter.list_products()

        assert page.next_cursor is None

    async def test_products_are_paged_by_modification_date(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[], headers={"X-WP-TotalPages": "1"})

        adapter = IntegrationFactory(transport=httpx.MockTransport(handler)).create(
            WOO_RECORD, {"consumer_key": "ck", "consumer_secret": "cs"}
        )

        await adapter.list_products(updated_since=datetime(2024, 3, 28, 12, tzinfo=timezone.utc))

        assert seen[0].url.params["orderby"] == "modified"
        assert seen[0].url.params["modified_after"] == "2024-03-28T12:00:00"

    async def test_non_list_body_is_an_api_error(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"code": "maintenance"}))
        adapter = IntegrationFactory(transport=transport).create(
            WOO_RECORD, {"consumer_key": "ck", "consumer_secret": "cs"}
        )

        with pytest.raises(IntegrationAPIError, match="Unexpected response body"):
            await adapter.list_products()

    def test_transform_product_converts_weight(self):
        adapter = IntegrationFactory().create(WOO_RECORD)

        product = adapter.transform_product(
            {"id": 9, "name": "Tea", "weight": "2", "stock_quantity": 4, "status": "publish"},
            "store-1",
        )

        assert product["id"] == "woocommerce-9"
        assert product["weight_oz"] == 32.0
        assert product["stock_status"] == "low_stock"
        assert product["status"] == "active"


class TestCarrierAdapters:
    async def test_shipping_adapters_reject_order_sync(self):
        adapter = IntegrationFactory().create(UPS_RECORD)

        with pytest.raises(UnsupportedOperation):
            await adapter.sync_orders()

    async def test_usps_catalog_marks_variable_boxes(self):
        boxes = await IntegrationFactory().create(USPS_RECORD).list_boxes()

        by_code = {box["carrier_code"]: box for box in boxes}
        assert by_code["MEDIUM_FLAT_RATE_BOX"]["is_editable"] is False
        assert by_code["PACKAGE_VARIABLE"]["is_editable"] is True
        assert all(box["box_type"] == "usps" for box in boxes)

    async def test_usps_token_is_cached(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            return httpx.Response(200, json={"access_token": "usps-at", "expires_in": 3600})

        adapter = IntegrationFactory(transport=httpx.MockTransport(handler)).create(
            USPS_RECORD, {"consumer_key": "k", "consumer_secret": "s"}
        )

        assert await adapter.get_access_token() == "usps-at"
        assert await adapter.get_access_token() == "usps-at"
        assert calls == ["/oauth2/v3/token"]

    async def test_ups_connection_test_refreshes_tokens(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/security/v1/oauth/refresh"
            return httpx.Response(200, json={"access_token": "new-at", "refresh_token": "new-rt", "expires_in": 14399})

        adapter = IntegrationFactory(transport=httpx.MockTransport(handler)).create(
            UPS_RECORD, {"access_token": "old-at", "refresh_token": "old-rt"}
        )

        result = await adapter.test_connection()

        assert result.success
        assert adapter.credentials["access_token"] == "new-at"
        assert adapter.credentials["refresh_token"] == "new-rt"

    async def test_ups_refresh_with_html_reply(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, text="<html>down</html>"))
        adapter = IntegrationFactory(transport=transport).create(
            UPS_RECORD, {"access_token": "old-at", "refresh_token": "old-rt"}
        )

        result = await adapter.test_connection()

        assert not result.success
        assert result.error == "Invalid JSON response"
        assert adapter.credentials["access_token"] == "old-at"

    async def test_usps_token_reply_without_token(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"error": "pending"}))
        adapter = IntegrationFactory(transport=transport).create(
            USPS_RECORD, {"consumer_key": "k", "consumer_secret": "s"}
        )

        result = await adapter.test_connection()

        assert not result.success
        assert result.error == "USPS token response had no access token"

    async def test_ups_without_authorization(self):
        result = await IntegrationFactory().create(UPS_RECORD).test_connection()

        assert not result.success
        assert result.error == "UPS account is not authorized"

    def test_adapter_classes(self):
        assert issubclass(USPSIntegration, ShippingIntegration)
        assert issubclass(UPSIntegration, ShippingIntegration)
        assert issubclass(WooCommerceIntegration, EcommerceIntegration)
