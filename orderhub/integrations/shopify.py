"""
Shopify Admin GraphQL adapter.
Handles rate limiting, retries, cursor pagination and record transforms.
"""
import asyncio
from datetime import datetime
from typing import Any, ClassVar, Optional

import httpx

from orderhub.core.exceptions import IntegrationAPIError
from orderhub.core.logging import get_logger
from orderhub.core.timeutils import isoformat, parse_datetime
from orderhub.integrations.base import (
    EcommerceIntegration,
    Page,
    ShopifyConfig,
    TestConnectionResult,
    read_json,
)

logger = get_logger(__name__)

FULFILLMENT_STATUS_MAP = {
    "FULFILLED": "fulfilled",
    "PARTIALLY_FULFILLED": "partially_fulfilled",
    "UNFULFILLED": "unfulfilled",
    "RESTOCKED": "cancelled",
    "PENDING_FULFILLMENT": "pending",
    "OPEN": "unfulfilled",
    "IN_PROGRESS": "processing",
    "ON_HOLD": "on_hold",
    "SCHEDULED": "scheduled",
}

FINANCIAL_STATUS_MAP = {
    "PENDING": "pending",
    "AUTHORIZED": "processing",
    "PAID": "paid",
    "PARTIALLY_PAID": "partially_paid",
    "REFUNDED": "refunded",
    "PARTIALLY_REFUNDED": "partially_refunded",
    "VOIDED": "cancelled",
    "EXPIRED": "expired",
}

PRODUCT_STATUS_MAP = {
    "ACTIVE": "active",
    "DRAFT": "draft",
    "ARCHIVED": "archived",
}

# Multipliers to ounces
WEIGHT_TO_OUNCES = {
    "GRAMS": 1 / 28.3495,
    "KILOGRAMS": 35.274,
    "POUNDS": 16.0,
    "OUNCES": 1.0,
}

SHOP_QUERY = """
query {
    shop {
        name
        email
        myshopifyDomain
        currencyCode
        plan {
            displayName
        }
    }
}
"""

ORDERS_QUERY = """
query GetOrders($first: Int!, $after: String, $query: String) {
    orders(first: $first, after: $after, query: $query, sortKey: UPDATED_AT) {
        edges {
            cursor
            node {
                id
                name
                email
                createdAt
                updatedAt
                currencyCode
                displayFinancialStatus
                displayFulfillmentStatus
                totalPriceSet {
                    shopMoney { amount currencyCode }
                }
                customer {
                    firstName
                    lastName
                    email
                }
                shippingAddress {
                    firstName
                    lastName
                    address1
                    address2
                    city
                    province
                    provinceCode
                    zip
                    country
                    countryCodeV2
                    phone
                }
                shippingLines(first: 1) {
                    edges { node { title } }
                }
                fulfillments(first: 1) {
                    trackingInfo { number company }
                }
                lineItems(first: 50) {
                    edges {
                        node {
                            id
                            name
                            title
                            sku
                            quantity
                            variantTitle
                            originalUnitPriceSet {
                                shopMoney { amount currencyCode }
                            }
                        }
                    }
                }
            }
        }
        pageInfo {
            hasNextPage
            endCursor
        }
    }
}
"""

PRODUCTS_QUERY = """
query GetProducts($first: Int!, $after: String, $query: String) {
    products(first: $first, after: $after, query: $query, sortKey: UPDATED_AT) {
        edges {
            cursor
            node {
                id
                title
                description
                status
                productType
                vendor
                tags
                createdAt
                updatedAt
                variants(first: 100) {
                    edges {
                        node {
                            id
                            title
                            sku
                            price
                            compareAtPrice
                            inventoryQuantity
                            barcode
                            selectedOptions { name value }
                            inventoryItem {
                                measurement {
                                    weight { value unit }
                                }
                            }
                        }
                    }
                }
            }
        }
        pageInfo {
            hasNextPage
            endCursor
        }
    }
}
"""


def gid_to_id(gid: Optional[str]) -> str:
    """gid://shopify/Order/123 -> 123"""
    return str(gid or "").rsplit("/", 1)[-1]


def stock_status_for(quantity: int) -> str:
    if quantity > 10:
        return "in_stock"
    if quantity > 0:
        return "low_stock"
    return "out_of_stock"


def weight_to_ounces(value: Any, unit: Optional[str]) -> float:
    if not value:
        return 0.0
    return float(value) * WEIGHT_TO_OUNCES.get(str(unit or "").upper(), 0.0)


def _variant_weight(variant: dict[str, Any]) -> tuple[Any, Optional[str]]:
    measured = ((variant.get("inventoryItem") or {}).get("measurement") or {}).get("weight")
    if measured:
        return measured.get("value"), measured.get("unit")
    return variant.get("weight"), variant.get("weightUnit")


def _edges(connection: Optional[dict[str, Any]]) -> list[dict[str, Any]]:
    return [edge["node"] for edge in (connection or {}).get("edges", [])]


def _money(money_set: Optional[dict[str, Any]]) -> tuple[float, Optional[str]]:
    shop_money = (money_set or {}).get("shopMoney") or {}
    return float(shop_money.get("amount") or 0), shop_money.get("currencyCode")


class ShopifyIntegration(EcommerceIntegration):
    """
    Async Shopify Admin GraphQL adapter.

    Features:
    - Retry on rate limiting (429) with exponential backoff
    - Cursor pagination with an `updated_at:>=` lower bound for incremental sync
    - Total transforms into canonical order/product dicts
    """

    provider: ClassVar[str] = "shopify"
    display_name: ClassVar[str] = "Shopify"

    GRAPHQL_ENDPOINT = "https://{domain}/admin/api/{version}/graphql.json"
    MAX_RETRIES = 3

    @property
    def settings(self) -> ShopifyConfig:
        return self.config.config

    @property
    def shop_domain(self) -> str:
        return self.settings.shop_domain

    @property
    def endpoint(self) -> str:
        return self.GRAPHQL_ENDPOINT.format(domain=self.shop_domain, version=self.settings.api_version)

    async def execute_query(
        self,
        query: str,
        variables: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Execute a GraphQL query against the Shopify Admin API.

        Raises:
            IntegrationAPIError: On HTTP, transport or GraphQL errors
        """
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": self.require_credential("access_token"),
        }

        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        async with self.http_client() as client:
            for attempt in range(self.MAX_RETRIES):
                try:
                    response = await client.post(self.endpoint, json=payload, headers=headers)
                    response.raise_for_status()
                except httpx.HTTPStatusError as e:
                    if e.response.status_code == 429 and attempt < self.MAX_RETRIES - 1:
                        # Rate limited - wait and retry
                        await asyncio.sleep(2 ** attempt)
                        continue
                    raise IntegrationAPIError(
                        f"HTTP error: {e.response.status_code}",
                        status_code=e.response.status_code,
                    )
                except httpx.RequestError as e:
                    if attempt < self.MAX_RETRIES - 1:
                        continue
                    raise IntegrationAPIError(f"Request failed: {e}")

                data = read_json(response)
                if data.get("errors"):
                    logger.error("Shopify GraphQL errors", errors=data["errors"], shop=self.shop_domain)
                    raise IntegrationAPIError(data["errors"])
                return data.get("data") or {}

        raise IntegrationAPIError("Max retries exceeded")

    async def _list(
        self,
        query: str,
        root: str,
        cursor: Optional[str],
        updated_since: Optional[datetime],
    ) -> Page:
        search = f"updated_at:>='{isoformat(updated_since)}'" if updated_since else None
        data = await self.execute_query(
            query,
            {"first": self.page_size, "after": cursor, "query": search},
        )
        connection = data.get(root) or {}
        page_info = connection.get("pageInfo") or {}
        return Page(
            items=_edges(connection),
            next_cursor=page_info.get("endCursor") if page_info.get("hasNextPage") else None,
        )

    async def list_orders(self, cursor: Optional[str] = None, updated_since: Optional[datetime] = None) -> Page:
        return await self._list(ORDERS_QUERY, "orders", cursor, updated_since)

    async def list_products(self, cursor: Optional[str] = None, updated_since: Optional[datetime] = None) -> Page:
        return await self._list(PRODUCTS_QUERY, "products", cursor, updated_since)

    async def test_connection(self) -> TestConnectionResult:
        try:
            data = await self.execute_query(SHOP_QUERY)
        except IntegrationAPIError as e:
            logger.warning("Shopify connection test failed", shop=self.shop_domain, error=str(e))
            return TestConnectionResult(success=False, error=str(e))

        shop = data.get("shop") or {}
        return TestConnectionResult(
            success=True,
            message=f"Connected to {shop.get('name') or self.shop_domain}",
            details=shop,
        )

    def transform_order(self, raw: dict[str, Any], store_id: str) -> dict[str, Any]:
        order_id = gid_to_id(raw["id"])

        line_items = []
        for item in _edges(raw.get("lineItems")):
            price, currency = _money(item.get("originalUnitPriceSet"))
            line_items.append({
                "id": f"shopify-line-{gid_to_id(item.get('id'))}",
                "name": item.get("name") or item.get("title") or "",
                "sku": item.get("sku") or "",
                "quantity": int(item.get("quantity") or 0),
                "price": price,
                "currency": currency,
                "variant": item.get("variantTitle") or "Default",
            })

        customer = raw.get("customer") or {}
        address = raw.get("shippingAddress") or {}
        if customer:
            customer_name = f"{customer.get('firstName') or ''} {customer.get('lastName') or ''}".strip()
        elif address:
            customer_name = f"{address.get('firstName') or ''} {address.get('lastName') or ''}".strip()
        else:
            customer_name = ""

        shipping_lines = _edges(raw.get("shippingLines"))
        fulfillments = raw.get("fulfillments") or []
        tracking = (fulfillments[0].get("trackingInfo") or [{}])[0] if fulfillments else {}
        total, total_currency = _money(raw.get("totalPriceSet"))

        return {
            "id": f"shopify-{order_id}",
            "external_id": order_id,
            "store_id": store_id,
            "platform": "Shopify",
            "order_number": raw.get("name") or f"#{order_id}",
            "customer_name": customer_name or "Unknown Customer",
            "customer_email": raw.get("email") or customer.get("email") or "",
            "total_amount": total,
            "currency": raw.get("currencyCode") or total_currency or "USD",
            "financial_status": FINANCIAL_STATUS_MAP.get(raw.get("displayFinancialStatus") or "", "pending"),
            "fulfillment_status": FULFILLMENT_STATUS_MAP.get(raw.get("displayFulfillmentStatus") or "", "unfulfilled"),
            "tracking_number": (tracking or {}).get("number"),
            "shipping_first_name": address.get("firstName") or "",
            "shipping_last_name": address.get("lastName") or "",
            "shipping_address1": address.get("address1") or "",
            "shipping_address2": address.get("address2") or "",
            "shipping_city": address.get("city") or "",
            "shipping_province": address.get("provinceCode") or address.get("province") or "",
            "shipping_zip": address.get("zip") or "",
            "shipping_country": address.get("country") or "",
            "shipping_country_code": address.get("countryCodeV2") or address.get("countryCode") or "",
            "requested_shipping": shipping_lines[0].get("title") if shipping_lines else "Standard Shipping",
            "line_items": line_items,
            "item_count": sum(item["quantity"] for item in line_items),
            "order_date": parse_datetime(raw.get("createdAt")),
            "source_updated_at": parse_datetime(raw.get("updatedAt") or raw.get("createdAt")),
        }

    def transform_product(self, raw: dict[str, Any], store_id: str) -> dict[str, Any]:
        product_id = gid_to_id(raw["id"])

        variants = []
        for variant in _edges(raw.get("variants")):
            quantity = int(variant.get("inventoryQuantity") or 0)
            weight, unit = _variant_weight(variant)
            variants.append({
                "id": f"shopify-variant-{gid_to_id(variant.get('id'))}",
                "name": variant.get("title") or "",
                "sku": variant.get("sku") or "",
                "price": float(variant.get("price") or 0),
                "compare_price": float(variant["compareAtPrice"]) if variant.get("compareAtPrice") else None,
                "stock_quantity": quantity,
                "stock_status": stock_status_for(quantity),
                "attributes": variant.get("selectedOptions") or [],
                "barcode": variant.get("barcode") or None,
                "weight_oz": round(weight_to_ounces(weight, unit), 2),
            })

        primary = variants[0] if variants else {}
        quantity = primary.get("stock_quantity", 0)

        return {
            "id": f"shopify-{product_id}",
            "external_id": product_id,
            "store_id": store_id,
            "sku": primary.get("sku") or f"SHOPIFY-{product_id}",
            "name": raw.get("title") or f"Shopify product {product_id}",
            "description": raw.get("description") or "",
            "category": raw.get("productType") or "Uncategorized",
            "vendor": raw.get("vendor") or "",
            "price": primary.get("price", 0.0),
            "stock_quantity": quantity,
            "stock_status": stock_status_for(quantity),
            "weight_oz": primary.get("weight_oz", 0.0),
            "variants": variants,
            "status": PRODUCT_STATUS_MAP.get(raw.get("status") or "", "inactive"),
            "source_updated_at": parse_datetime(raw.get("updatedAt") or raw.get("createdAt")),
        }
