"""
WooCommerce REST API (v3) adapter.
Uses HTTP Basic auth with consumer key/secret and page-number pagination.
"""
from datetime import datetime
from typing import Any, ClassVar, Optional

import httpx

from orderhub.core.exceptions import IntegrationAPIError
from orderhub.core.logging import get_logger
from orderhub.core.timeutils import ensure_utc, parse_datetime
from orderhub.integrations.base import (
    EcommerceIntegration,
    Page,
    TestConnectionResult,
    WooCommerceConfig,
    read_json,
)
from orderhub.integrations.shopify import stock_status_for

logger = get_logger(__name__)

# WooCommerce order status -> (financial status, fulfillment status)
ORDER_STATUS_MAP = {
    "pending": ("pending", "pending"),
    "processing": ("paid", "unfulfilled"),
    "on-hold": ("pending", "on_hold"),
    "completed": ("paid", "fulfilled"),
    "cancelled": ("cancelled", "cancelled"),
    "refunded": ("refunded", "cancelled"),
    "failed": ("failed", "unfulfilled"),
}

PRODUCT_STATUS_MAP = {
    "publish": "active",
    "draft": "draft",
    "pending": "draft",
    "private": "inactive",
}

WEIGHT_TO_OUNCES = {"lbs": 16.0, "kg": 35.274, "oz": 1.0, "g": 1 / 28.3495}


class WooCommerceIntegration(EcommerceIntegration):
    """Thin WooCommerce client; the page number is the pagination cursor."""

    provider: ClassVar[str] = "woocommerce"
    display_name: ClassVar[str] = "WooCommerce"

    @property
    def settings(self) -> WooCommerceConfig:
        return self.config.config

    @property
    def base_url(self) -> str:
        return self.settings.store_url.rstrip("/") + "/wp-json/wc/v3"

    def _auth(self) -> httpx.BasicAuth:
        return httpx.BasicAuth(
            self.require_credential("consumer_key"),
            self.require_credential("consumer_secret"),
        )

    async def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> httpx.Response:
        async with self.http_client(auth=self._auth()) as client:
            try:
                response = await client.get(f"{self.base_url}{path}", params=params)
            except httpx.RequestError as e:
                raise IntegrationAPIError(f"Request failed: {e}")

        if not response.is_success:
            logger.error(
                "WooCommerce API error",
                path=path,
                status=response.status_code,
                body=response.text[:300],
            )
            raise IntegrationAPIError(
                f"HTTP error: {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def _list(self, path: str, cursor: Optional[str], updated_since: Optional[datetime]) -> Page:
        page = int(cursor or 1)
        params: dict[str, Any] = {
            "per_page": self.page_size,
            "page": page,
            "orderby": "modified",
            "order": "asc",
        }
        if updated_since:
            params["modified_after"] = ensure_utc(updated_since).strftime("%Y-%m-%dT%H:%M:%S")
            params["dates_are_gmt"] = "true"

        response = await self._get(path, params)
        batch = read_json(response, list)

        total_pages = response.headers.get("X-WP-TotalPages")
        if total_pages is not None:
            has_more = page < int(total_pages)
        else:
            has_more = len(batch) >= self.page_size
        return Page(items=batch, next_cursor=str(page + 1) if batch and has_more else None)

    async def list_orders(self, cursor: Optional[str] = None, updated_since: Optional[datetime] = None) -> Page:
        return await self._list("/orders", cursor, updated_since)

    async def list_products(self, cursor: Optional[str] = None, updated_since: Optional[datetime] = None) -> Page:
        return await self._list("/products", cursor, updated_since)

    async def test_connection(self) -> TestConnectionResult:
        try:
            response = await self._get("/system_status")
        except IntegrationAPIError as e:
            return TestConnectionResult(success=False, error=str(e))

        environment = read_json(response).get("environment") or {}
        return TestConnectionResult(
            success=True,
            message="WooCommerce connection successful",
            details={
                "site_url": environment.get("site_url"),
                "version": environment.get("version"),
            },
        )

    def transform_order(self, raw: dict[str, Any], store_id: str) -> dict[str, Any]:
        order_id = str(raw["id"])
        billing = raw.get("billing") or {}
        shipping = raw.get("shipping") or {}
        financial, fulfillment = ORDER_STATUS_MAP.get(raw.get("status") or "", ("pending", "unfulfilled"))

        line_items = [
            {
                "id": f"woocommerce-line-{item.get('id')}",
                "name": item.get("name") or "",
                "sku": item.get("sku") or "",
                "quantity": int(item.get("quantity") or 0),
                "price": float(item.get("price") or 0),
                "currency": raw.get("currency"),
                "variant": "Default",
            }
            for item in raw.get("line_items") or []
        ]
        shipping_lines = raw.get("shipping_lines") or []
        name_source = shipping if shipping.get("first_name") else billing

        return {
            "id": f"woocommerce-{order_id}",
            "external_id": order_id,
            "store_id": store_id,
            "platform": "WooCommerce",
            "order_number": f"#{raw.get('number') or order_id}",
            "customer_name": f"{name_source.get('first_name') or ''} {name_source.get('last_name') or ''}".strip()
            or "Unknown Customer",
            "customer_email": billing.get("email") or "",
            "total_amount": float(raw.get("total") or 0),
            "currency": raw.get("currency") or "USD",
            "financial_status": financial,
            "fulfillment_status": fulfillment,
            "shipping_first_name": shipping.get("first_name") or "",
            "shipping_last_name": shipping.get("last_name") or "",
            "shipping_address1": shipping.get("address_1") or "",
            "shipping_address2": shipping.get("address_2") or "",
            "shipping_city": shipping.get("city") or "",
            "shipping_province": shipping.get("state") or "",
            "shipping_zip": shipping.get("postcode") or "",
            "shipping_country": shipping.get("country") or "",
            "shipping_country_code": shipping.get("country") or "",
            "requested_shipping": shipping_lines[0].get("method_title") if shipping_lines else "Standard Shipping",
            "line_items": line_items,
            "item_count": sum(item["quantity"] for item in line_items),
            "order_date": parse_datetime(raw.get("date_created_gmt") or raw.get("date_created")),
            "source_updated_at": parse_datetime(raw.get("date_modified_gmt") or raw.get("date_modified")),
        }

    def transform_product(self, raw: dict[str, Any], store_id: str) -> dict[str, Any]:
        product_id = str(raw["id"])
        quantity = int(raw.get("stock_quantity") or 0)
        categories = raw.get("categories") or []
        weight = float(raw.get("weight") or 0) * WEIGHT_TO_OUNCES[self.settings.weight_unit]
        dimensions = raw.get("dimensions") or {}

        return {
            "id": f"woocommerce-{product_id}",
            "external_id": product_id,
            "store_id": store_id,
            "sku": raw.get("sku") or f"WOOCOMMERCE-{product_id}",
            "name": raw.get("name") or f"WooCommerce product {product_id}",
            "description": raw.get("short_description") or raw.get("description") or "",
            "category": categories[0].get("name") if categories else "Uncategorized",
            "vendor": "",
            "price": float(raw.get("price") or 0),
            "stock_quantity": quantity,
            "stock_status": stock_status_for(quantity),
            "weight_oz": round(weight, 2),
            "variants": [{"id": str(v)} for v in raw.get("variations") or []],
            "status": PRODUCT_STATUS_MAP.get(raw.get("status") or "", "inactive"),
            "dimensions": {
                "length": float(dimensions.get("length") or 0),
                "width": float(dimensions.get("width") or 0),
                "height": float(dimensions.get("height") or 0),
                "unit": "in",
            },
            "source_updated_at": parse_datetime(raw.get("date_modified_gmt") or raw.get("date_modified")),
        }
