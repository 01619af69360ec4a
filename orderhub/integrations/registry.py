"""
Integration registry and factory.

Maps provider names (case-insensitive) to adapter classes so callers never
switch on the provider themselves.
"""
from collections.abc import Iterable
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from orderhub.core.logging import get_logger
from orderhub.integrations.base import (
    BaseIntegration,
    EcommerceIntegration,
    IntegrationConfig,
    ShippingIntegration,
)
from orderhub.integrations.shopify import ShopifyIntegration
from orderhub.integrations.ups import UPSIntegration
from orderhub.integrations.usps import USPSIntegration
from orderhub.integrations.woocommerce import WooCommerceIntegration

logger = get_logger(__name__)


class IntegrationRegistry:
    """Provider name -> adapter class."""

    def __init__(self) -> None:
        self._adapters: dict[str, type[BaseIntegration]] = {}

    def register(self, name: str, adapter_cls: type[BaseIntegration]) -> None:
        key = name.lower()
        if key in self._adapters:
            logger.warning("Replacing registered integration", provider=key)
        self._adapters[key] = adapter_cls

    def unregister(self, name: str) -> None:
        self._adapters.pop(name.lower(), None)

    def has(self, name: str) -> bool:
        return name.lower() in self._adapters

    def get(self, name: str) -> Optional[type[BaseIntegration]]:
        return self._adapters.get(name.lower())

    def names(self) -> list[str]:
        return sorted(self._adapters)


def default_registry() -> IntegrationRegistry:
    registry = IntegrationRegistry()
    for adapter_cls in (ShopifyIntegration, WooCommerceIntegration, USPSIntegration, UPSIntegration):
        registry.register(adapter_cls.provider, adapter_cls)
    return registry


registry = default_registry()


class IntegrationFactory:
    """Instantiates adapters from persisted integration data."""

    def __init__(
        self,
        integration_registry: Optional[IntegrationRegistry] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.registry = integration_registry or registry
        self.transport = transport

    def create(
        self,
        integration_data: dict[str, Any],
        credentials: Optional[dict[str, Any]] = None,
    ) -> Optional[BaseIntegration]:
        """
        Build the adapter for an integration.

        Returns None (with a warning) when the provider is not registered or
        the stored configuration does not fit the provider's config model.
        """
        provider = str(integration_data.get("provider") or integration_data.get("name") or "")
        adapter_cls = self.registry.get(provider)
        if adapter_cls is None:
            logger.warning("Integration not supported", provider=provider)
            return None

        try:
            config = IntegrationConfig.from_record(integration_data)
            return adapter_cls(config, credentials, transport=self.transport)
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning(
                "Failed to create integration",
                provider=provider,
                integration_id=integration_data.get("id"),
                error=str(e),
            )
            return None

    def create_many(self, integrations: Iterable[dict[str, Any]]) -> list[BaseIntegration]:
        created = (self.create(data) for data in integrations)
        return [adapter for adapter in created if adapter is not None]

    @staticmethod
    def filter_by_type(adapters: Iterable[BaseIntegration], integration_type: str) -> list[BaseIntegration]:
        return [adapter for adapter in adapters if adapter.type == integration_type]

    def ecommerce(self, integrations: Iterable[dict[str, Any]]) -> list[EcommerceIntegration]:
        return [a for a in self.create_many(integrations) if isinstance(a, EcommerceIntegration)]

    def shipping(self, integrations: Iterable[dict[str, Any]]) -> list[ShippingIntegration]:
        return [a for a in self.create_many(integrations) if isinstance(a, ShippingIntegration)]

    def is_supported(self, provider: str) -> bool:
        return self.registry.has(provider)

    def supported_integrations(self) -> list[str]:
        return self.registry.names()
