"""
Integration adapter interface.

Every carrier/platform adapter implements one of two closed capability sets:
EcommerceIntegration (pull orders/products) or ShippingIntegration
(labels, rates, tracking). Provider configuration is a tagged union keyed by
provider name.
"""
from abc import ABC, abstractmethod
from typing import Annotated, Any, ClassVar, Literal, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from orderhub.core.exceptions import IntegrationAPIError, UnsupportedOperation
from orderhub.core.logging import get_logger
from orderhub.integrations.pagination import collect_pages

logger = get_logger(__name__)

ECOMMERCE_FEATURES = ("productSync", "orderSync", "inventorySync")
SHIPPING_FEATURES = ("labelGeneration", "rateCalculation", "tracking")


# ============================================
# PROVIDER CONFIG (tagged union)
# ============================================

class ProviderConfig(BaseModel):
    """Non-secret provider settings; secrets live in the credential vault."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class ShopifyConfig(ProviderConfig):
    provider: Literal["shopify"] = "shopify"
    shop_domain: str
    api_version: str = "2024-01"
    scopes: Optional[str] = None


class WooCommerceConfig(ProviderConfig):
    provider: Literal["woocommerce"] = "woocommerce"
    store_url: str
    # Unit the store reports product weights in
    weight_unit: Literal["lbs", "kg", "oz", "g"] = "lbs"


class UPSConfig(ProviderConfig):
    provider: Literal["ups"] = "ups"
    account_number: Optional[str] = None
    environment: Literal["sandbox", "production"] = "production"


class USPSConfig(ProviderConfig):
    provider: Literal["usps"] = "usps"
    environment: Literal["sandbox", "production"] = "production"
    origin_zip: Optional[str] = None


AnyProviderConfig = Annotated[
    Union[ShopifyConfig, WooCommerceConfig, UPSConfig, USPSConfig],
    Field(discriminator="provider"),
]

CONFIG_MODELS: dict[str, type[ProviderConfig]] = {
    "shopify": ShopifyConfig,
    "woocommerce": WooCommerceConfig,
    "ups": UPSConfig,
    "usps": USPSConfig,
}


def config_model_for(provider: str) -> Optional[type[ProviderConfig]]:
    return CONFIG_MODELS.get(provider.lower())


class IntegrationConfig(BaseModel):
    """Typed view of a persisted integration handed to adapters."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    type: Literal["shipping", "ecommerce"]
    provider: str
    store_id: Optional[str] = None
    account_id: str
    config: AnyProviderConfig

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> "IntegrationConfig":
        """Build from an integration dict, tagging `config` with the provider."""
        provider = str(data.get("provider") or data.get("name") or "").lower()
        payload = dict(data)
        payload["provider"] = provider
        payload["config"] = {**(data.get("config") or {}), "provider": provider}
        return cls.model_validate(payload)


# ============================================
# RESULT TYPES
# ============================================

class SyncResult(BaseModel):
    success: bool
    count: int = 0
    data: list[dict[str, Any]] = Field(default_factory=list)
    error: Optional[str] = None


class TestConnectionResult(BaseModel):
    __test__ = False  # not a pytest class

    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    details: Optional[dict[str, Any]] = None


class Page(BaseModel):
    """One page of raw platform records and the cursor for the next one."""

    items: list[dict[str, Any]] = Field(default_factory=list)
    next_cursor: Optional[str] = None


def read_json(response: httpx.Response, expected: type = dict) -> Any:
    """
    Decode a provider response body.

    Raises:
        IntegrationAPIError: If the body is not JSON or not of the expected type
    """
    try:
        data = response.json()
    except ValueError as e:
        raise IntegrationAPIError("Invalid JSON response", status_code=response.status_code) from e
    if not isinstance(data, expected):
        raise IntegrationAPIError(
            f"Unexpected response body: {type(data).__name__}",
            status_code=response.status_code,
        )
    return data


# ============================================
# ADAPTER BASE CLASSES
# ============================================

class BaseIntegration(ABC):
    """Common adapter plumbing: config, credentials and the HTTP client."""

    provider: ClassVar[str]
    display_name: ClassVar[str]
    integration_type: ClassVar[str]
    features: ClassVar[tuple[str, ...]] = ()

    REQUEST_TIMEOUT = 30.0

    def __init__(
        self,
        config: IntegrationConfig,
        credentials: Optional[dict[str, Any]] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config
        self.credentials = dict(credentials or {})
        self.transport = transport

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def type(self) -> str:
        return self.config.type

    @property
    def store_id(self) -> Optional[str]:
        return self.config.store_id

    @property
    def settings(self) -> ProviderConfig:
        return self.config.config

    def get_supported_features(self) -> list[str]:
        return list(self.features)

    def supports_feature(self, feature: str) -> bool:
        return feature in self.features

    def http_client(self, **kwargs: Any) -> httpx.AsyncClient:
        kwargs.setdefault("timeout", self.REQUEST_TIMEOUT)
        return httpx.AsyncClient(transport=self.transport, **kwargs)

    def require_credential(self, key: str) -> str:
        value = self.credentials.get(key)
        if not value:
            raise IntegrationAPIError(f"{self.display_name} credential '{key}' is not configured")
        return value

    @abstractmethod
    async def test_connection(self) -> TestConnectionResult:
        ...

    @abstractmethod
    async def sync_products(self) -> SyncResult:
        ...

    @abstractmethod
    async def sync_orders(self) -> SyncResult:
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.config.id}>"


class EcommerceIntegration(BaseIntegration):
    """
    Platform adapter.

    Subclasses implement the page-level listing calls and the record
    transforms; the sync_* helpers page through everything and never raise.
    """

    integration_type: ClassVar[str] = "ecommerce"
    features: ClassVar[tuple[str, ...]] = ECOMMERCE_FEATURES

    page_size: int = 50

    @abstractmethod
    async def list_orders(self, cursor: Optional[str] = None, updated_since: Optional[Any] = None) -> Page:
        """Fetch one page of raw orders; raises IntegrationAPIError."""

    @abstractmethod
    async def list_products(self, cursor: Optional[str] = None, updated_since: Optional[Any] = None) -> Page:
        """Fetch one page of raw products; raises IntegrationAPIError."""

    @abstractmethod
    def transform_order(self, raw: dict[str, Any], store_id: str) -> dict[str, Any]:
        ...

    @abstractmethod
    def transform_product(self, raw: dict[str, Any], store_id: str) -> dict[str, Any]:
        ...

    async def _sync(self, entity: str, fetch, transform) -> SyncResult:
        collection = await collect_pages(fetch, label=f"{self.provider}:{entity}")
        store_id = self.store_id or ""
        try:
            data = [transform(raw, store_id) for raw in collection.items]
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Transform failed", provider=self.provider, entity=entity, error=str(e))
            return SyncResult(success=False, error=f"Failed to transform {entity}: {e}")

        if collection.error and not data:
            return SyncResult(success=False, error=collection.error)
        return SyncResult(success=True, count=len(data), data=data, error=collection.error)

    async def sync_orders(self) -> SyncResult:
        return await self._sync(
            "orders",
            lambda cursor: self.list_orders(cursor),
            self.transform_order,
        )

    async def sync_products(self) -> SyncResult:
        return await self._sync(
            "products",
            lambda cursor: self.list_products(cursor),
            self.transform_product,
        )

    async def sync_all(self) -> dict[str, SyncResult]:
        return {
            "products": await self.sync_products(),
            "orders": await self.sync_orders(),
        }


class ShippingIntegration(BaseIntegration):
    """Carrier adapter. Order/product sync is outside its capability set."""

    integration_type: ClassVar[str] = "shipping"
    features: ClassVar[tuple[str, ...]] = SHIPPING_FEATURES

    @abstractmethod
    async def create_label(self, shipment: dict[str, Any]) -> dict[str, Any]:
        ...

    @abstractmethod
    async def get_rates(self, shipment: dict[str, Any]) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    async def track_package(self, tracking_number: str) -> dict[str, Any]:
        ...

    async def list_boxes(self) -> list[dict[str, Any]]:
        """Carrier packaging catalog as box dicts; empty when the carrier has none."""
        return []

    async def sync_products(self) -> SyncResult:
        raise UnsupportedOperation(f"{self.display_name} integration does not support product sync")

    async def sync_orders(self) -> SyncResult:
        raise UnsupportedOperation(f"{self.display_name} integration does not support order sync")
