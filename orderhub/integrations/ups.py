"""
UPS REST API adapter (bearer token from the OAuth authorization-code flow).
"""
import uuid
from typing import Any, ClassVar, Optional

import httpx

from orderhub.core.config import settings
from orderhub.core.exceptions import IntegrationAPIError
from orderhub.core.logging import get_logger
from orderhub.integrations.base import (
    SHIPPING_FEATURES,
    ShippingIntegration,
    TestConnectionResult,
    UPSConfig,
    read_json,
)
from orderhub.integrations.usps import container_to_box

logger = get_logger(__name__)

UPS_BASE_URLS = {
    "production": "https://onlinetools.ups.com",
    "sandbox": "https://wwwcie.ups.com",
}

UPS_API_VERSION = "v2403"

UPS_CONTAINERS: list[dict[str, Any]] = [
    {
        "carrier_code": "UPS_LETTER",
        "name": "UPS Express Envelope",
        "dimensions": {"length": 12.5, "width": 9.5, "height": 0.25, "unit": "in"},
        "weight": {"max": 1.1, "tare": 0.1, "unit": "lbs"},
        "mail_class": "UPS",
        "package_type": "01",
    },
    {
        "carrier_code": "UPS_PAK",
        "name": "UPS Pak",
        "dimensions": {"length": 16, "width": 12.75, "height": 1, "unit": "in"},
        "weight": {"max": 150, "tare": 0.2, "unit": "lbs"},
        "mail_class": "UPS",
        "package_type": "04",
    },
    {
        "carrier_code": "UPS_EXPRESS_BOX",
        "name": "UPS Express Box",
        "dimensions": {"length": 18, "width": 13, "height": 3, "unit": "in"},
        "weight": {"max": 30, "tare": 0.5, "unit": "lbs"},
        "mail_class": "UPS",
        "package_type": "21",
    },
    {
        "carrier_code": "UPS_TUBE",
        "name": "UPS Tube",
        "dimensions": {"length": 38, "width": 6, "height": 6, "unit": "in"},
        "weight": {"max": 30, "tare": 0.5, "unit": "lbs"},
        "mail_class": "UPS",
        "package_type": "03",
    },
    {
        "carrier_code": "UPS_CUSTOMER_SUPPLIED",
        "name": "Your Own Box (UPS)",
        "dimensions": {"length": 0, "width": 0, "height": 0, "unit": "in"},
        "weight": {"max": 150, "tare": 0, "unit": "lbs"},
        "mail_class": "UPS",
        "package_type": "PACKAGE",
    },
]


class UPSIntegration(ShippingIntegration):
    """UPS rating, shipping and tracking."""

    provider: ClassVar[str] = "ups"
    display_name: ClassVar[str] = "UPS"
    features: ClassVar[tuple[str, ...]] = SHIPPING_FEATURES + ("oauthAuthentication",)

    @property
    def settings(self) -> UPSConfig:
        return self.config.config

    @property
    def base_url(self) -> str:
        return UPS_BASE_URLS[self.settings.environment]

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.require_credential('access_token')}",
            "transId": uuid.uuid4().hex[:32],
            "transactionSrc": "orderhub",
            "Accept": "application/json",
        }
        async with self.http_client() as client:
            try:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    json=json,
                    params=params,
                    headers=headers,
                )
            except httpx.RequestError as e:
                raise IntegrationAPIError(f"UPS request failed: {e}")

        if not response.is_success:
            logger.error("UPS API error", path=path, status=response.status_code, body=response.text[:300])
            raise IntegrationAPIError(
                f"UPS API error ({response.status_code}): {response.text[:300]}",
                status_code=response.status_code,
            )
        return read_json(response)

    async def refresh_access_token(self) -> dict[str, Any]:
        """
        Exchange the stored refresh token for a new token pair.

        Updates this adapter's credentials and returns them so the caller can
        write them back to the vault.
        """
        if not settings.ups_client_id or not settings.ups_client_secret:
            raise IntegrationAPIError("UPS client credentials are not configured")

        async with self.http_client(
            auth=httpx.BasicAuth(settings.ups_client_id, settings.ups_client_secret)
        ) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/security/v1/oauth/refresh",
                    data={
                        "grant_type": "refresh_token",
                        "refresh_token": self.require_credential("refresh_token"),
                    },
                )
            except httpx.RequestError as e:
                raise IntegrationAPIError(f"UPS token refresh failed: {e}")

        if not response.is_success:
            raise IntegrationAPIError(
                f"UPS token refresh failed ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )

        tokens = read_json(response)
        if not tokens.get("access_token"):
            raise IntegrationAPIError(
                "UPS token refresh returned no access token",
                status_code=response.status_code,
            )
        self.credentials.update({
            "access_token": tokens["access_token"],
            "refresh_token": tokens.get("refresh_token", self.credentials.get("refresh_token")),
            "expires_in": tokens.get("expires_in"),
        })
        logger.info("UPS access token refreshed", integration_id=self.config.id)
        return dict(self.credentials)

    async def test_connection(self) -> TestConnectionResult:
        if not self.credentials.get("access_token"):
            return TestConnectionResult(success=False, error="UPS account is not authorized")
        try:
            await self.refresh_access_token()
        except IntegrationAPIError as e:
            return TestConnectionResult(success=False, error=str(e))
        return TestConnectionResult(
            success=True,
            message="UPS connection successful",
            details={
                "account_number": self.settings.account_number,
                "environment": self.settings.environment,
                "credentials_refreshed": True,
            },
        )

    async def get_rates(self, shipment: dict[str, Any]) -> list[dict[str, Any]]:
        data = await self._request(
            "POST",
            f"/api/rating/{UPS_API_VERSION}/Shop",
            json={"RateRequest": shipment["rate_request"]},
        )
        rated = (data.get("RateResponse") or {}).get("RatedShipment") or []
        return rated if isinstance(rated, list) else [rated]

    async def create_label(self, shipment: dict[str, Any]) -> dict[str, Any]:
        data = await self._request(
            "POST",
            f"/api/shipments/{UPS_API_VERSION}/ship",
            json={"ShipmentRequest": shipment["shipment_request"]},
        )
        return data.get("ShipmentResponse") or data

    async def track_package(self, tracking_number: str) -> dict[str, Any]:
        data = await self._request("GET", f"/api/track/v1/details/{tracking_number}")
        return data.get("trackResponse") or data

    async def list_boxes(self) -> list[dict[str, Any]]:
        return [container_to_box(container, "ups") for container in UPS_CONTAINERS]
