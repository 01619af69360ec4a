"""
USPS v3 REST API adapter (OAuth client-credentials).
"""
from datetime import timedelta
from typing import Any, ClassVar, Optional

import httpx

from orderhub.core.config import settings
from orderhub.core.exceptions import IntegrationAPIError
from orderhub.core.logging import get_logger
from orderhub.core.timeutils import utcnow
from orderhub.integrations.base import (
    SHIPPING_FEATURES,
    ShippingIntegration,
    TestConnectionResult,
    USPSConfig,
    read_json,
)

logger = get_logger(__name__)

USPS_BASE_URLS = {
    "production": "https://apis.usps.com",
    "sandbox": "https://apis-tem.usps.com",
}

# Packaging catalog; carrier_code/mail_class identify a box across syncs
USPS_CONTAINERS: list[dict[str, Any]] = [
    {
        "carrier_code": "FLAT_RATE_ENVELOPE",
        "name": "USPS Priority Mail Flat Rate Envelope",
        "dimensions": {"length": 12.5, "width": 9.5, "height": 0.75, "unit": "in"},
        "weight": {"max": 70, "tare": 0.1, "unit": "lbs"},
        "flat_rate": True,
        "flat_rate_price": 9.65,
        "mail_class": "PRIORITY_MAIL",
        "package_type": "FLAT_RATE_ENVELOPE",
    },
    {
        "carrier_code": "PADDED_FLAT_RATE_ENVELOPE",
        "name": "USPS Padded Flat Rate Envelope",
        "dimensions": {"length": 12.5, "width": 9.5, "height": 1, "unit": "in"},
        "weight": {"max": 70, "tare": 0.2, "unit": "lbs"},
        "flat_rate": True,
        "flat_rate_price": 10.40,
        "mail_class": "PRIORITY_MAIL",
        "package_type": "FLAT_RATE_ENVELOPE",
    },
    {
        "carrier_code": "SMALL_FLAT_RATE_BOX",
        "name": "USPS Small Flat Rate Box",
        "dimensions": {"length": 8.625, "width": 5.375, "height": 1.625, "unit": "in"},
        "weight": {"max": 70, "tare": 0.3, "unit": "lbs"},
        "flat_rate": True,
        "flat_rate_price": 10.40,
        "mail_class": "PRIORITY_MAIL",
        "package_type": "FLAT_RATE_BOX",
    },
    {
        "carrier_code": "MEDIUM_FLAT_RATE_BOX",
        "name": "USPS Medium Flat Rate Box",
        "dimensions": {"length": 11.25, "width": 8.75, "height": 6, "unit": "in"},
        "weight": {"max": 70, "tare": 0.5, "unit": "lbs"},
        "flat_rate": True,
        "flat_rate_price": 17.05,
        "mail_class": "PRIORITY_MAIL",
        "package_type": "FLAT_RATE_BOX",
    },
    {
        "carrier_code": "LARGE_FLAT_RATE_BOX",
        "name": "USPS Large Flat Rate Box",
        "dimensions": {"length": 12.25, "width": 12.25, "height": 6, "unit": "in"},
        "weight": {"max": 70, "tare": 0.6, "unit": "lbs"},
        "flat_rate": True,
        "flat_rate_price": 22.80,
        "mail_class": "PRIORITY_MAIL",
        "package_type": "FLAT_RATE_BOX",
    },
    {
        "carrier_code": "PACKAGE_VARIABLE",
        "name": "Your Own Box (Variable)",
        "dimensions": {"length": 0, "width": 0, "height": 0, "unit": "in"},
        "weight": {"max": 70, "tare": 0, "unit": "lbs"},
        "flat_rate": False,
        "mail_class": "PRIORITY_MAIL",
        "package_type": "PACKAGE",
    },
    {
        "carrier_code": "PACKAGE_GROUND",
        "name": "Your Own Box (Ground Advantage)",
        "dimensions": {"length": 0, "width": 0, "height": 0, "unit": "in"},
        "weight": {"max": 70, "tare": 0, "unit": "lbs"},
        "flat_rate": False,
        "mail_class": "USPS_GROUND_ADVANTAGE",
        "package_type": "PACKAGE",
    },
    {
        "carrier_code": "LETTER",
        "name": "Letter",
        "dimensions": {"length": 11.5, "width": 6.125, "height": 0.25, "unit": "in"},
        "weight": {"max": 3.5, "tare": 0.01, "unit": "lbs"},
        "flat_rate": False,
        "mail_class": "FIRST-CLASS_PACKAGE_SERVICE",
        "package_type": "LETTER",
    },
]


def container_to_box(container: dict[str, Any], box_type: str) -> dict[str, Any]:
    """Carrier container definition -> shipping box dict."""
    is_variable = container["package_type"] == "PACKAGE"
    dims = container["dimensions"]
    no_dimensions = not any(dims.get(axis) for axis in ("length", "width", "height"))
    return {
        "name": container["name"],
        "box_type": box_type,
        "carrier_code": container["carrier_code"],
        "mail_class": container.get("mail_class"),
        "package_type": container.get("package_type"),
        "dimensions": dict(dims),
        "weight": dict(container["weight"]),
        "flat_rate": container.get("flat_rate", False),
        "flat_rate_price": container.get("flat_rate_price"),
        # Variable boxes stay inactive until the user enters dimensions
        "is_active": not (is_variable and no_dimensions),
        "is_editable": is_variable,
        "needs_dimensions": is_variable and no_dimensions,
    }


class USPSIntegration(ShippingIntegration):
    """USPS rates, labels and tracking."""

    provider: ClassVar[str] = "usps"
    display_name: ClassVar[str] = "USPS"
    features: ClassVar[tuple[str, ...]] = SHIPPING_FEATURES + ("addressValidation",)

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._access_token: Optional[str] = None
        self._token_expiry = utcnow()

    @property
    def settings(self) -> USPSConfig:
        return self.config.config

    @property
    def base_url(self) -> str:
        return USPS_BASE_URLS[self.settings.environment]

    def _client_credentials(self) -> tuple[str, str]:
        key = self.credentials.get("consumer_key") or settings.usps_consumer_key
        secret = self.credentials.get("consumer_secret") or settings.usps_consumer_secret
        if not key or not secret:
            raise IntegrationAPIError("USPS consumer key/secret are not configured")
        return key, secret

    async def get_access_token(self) -> str:
        """Client-credentials token, cached until shortly before expiry."""
        if self._access_token and utcnow() < self._token_expiry:
            return self._access_token

        client_id, client_secret = self._client_credentials()
        async with self.http_client() as client:
            try:
                response = await client.post(
                    f"{self.base_url}/oauth2/v3/token",
                    json={
                        "client_id": client_id,
                        "client_secret": client_secret,
                        "grant_type": "client_credentials",
                    },
                )
            except httpx.RequestError as e:
                raise IntegrationAPIError(f"USPS token request failed: {e}")

        if not response.is_success:
            raise IntegrationAPIError(
                f"USPS OAuth error ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )

        data = read_json(response)
        if not data.get("access_token"):
            raise IntegrationAPIError(
                "USPS token response had no access token",
                status_code=response.status_code,
            )
        self._access_token = data["access_token"]
        expires_in = int(data.get("expires_in") or 3600)
        self._token_expiry = utcnow() + timedelta(seconds=max(expires_in - 60, 0))
        return self._access_token

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        token = await self.get_access_token()
        request_headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            **(headers or {}),
        }
        async with self.http_client() as client:
            try:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    json=json,
                    params=params,
                    headers=request_headers,
                )
            except httpx.RequestError as e:
                raise IntegrationAPIError(f"USPS request failed: {e}")

        if not response.is_success:
            logger.error("USPS API error", path=path, status=response.status_code, body=response.text[:300])
            raise IntegrationAPIError(
                f"USPS API error ({response.status_code}): {response.text[:300]}",
                status_code=response.status_code,
            )
        return read_json(response)

    async def test_connection(self) -> TestConnectionResult:
        try:
            await self.get_access_token()
        except IntegrationAPIError as e:
            return TestConnectionResult(success=False, error=str(e))
        return TestConnectionResult(
            success=True,
            message="USPS connection successful",
            details={"environment": self.settings.environment},
        )

    async def get_rates(self, shipment: dict[str, Any]) -> list[dict[str, Any]]:
        body = {
            "originZIPCode": shipment.get("origin_zip") or self.settings.origin_zip,
            "destinationZIPCode": shipment["destination_zip"],
            "weight": shipment["weight_lbs"],
            "length": shipment.get("length", 0),
            "width": shipment.get("width", 0),
            "height": shipment.get("height", 0),
            "mailClass": shipment.get("mail_class", "USPS_GROUND_ADVANTAGE"),
            "processingCategory": shipment.get("processing_category", "MACHINABLE"),
            "rateIndicator": shipment.get("rate_indicator", "SP"),
            "destinationEntryFacilityType": "NONE",
            "priceType": shipment.get("price_type", "COMMERCIAL"),
        }
        data = await self._request("POST", "/prices/v3/base-rates/search", json=body)
        return data.get("rates") or [data]

    async def create_label(self, shipment: dict[str, Any]) -> dict[str, Any]:
        payment_token = shipment.get("payment_authorization_token") or self.credentials.get(
            "payment_authorization_token"
        )
        if not payment_token:
            raise IntegrationAPIError("USPS label creation requires a payment authorization token")
        return await self._request(
            "POST",
            "/labels/v3/label",
            json=shipment["label_request"],
            headers={"X-Payment-Authorization-Token": payment_token},
        )

    async def track_package(self, tracking_number: str) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"/tracking/v3/tracking/{tracking_number}",
            params={"expand": "DETAIL"},
        )

    async def list_boxes(self) -> list[dict[str, Any]]:
        return [container_to_box(container, "usps") for container in USPS_CONTAINERS]
