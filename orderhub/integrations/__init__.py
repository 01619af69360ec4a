"""
Carrier and platform adapters.
"""
from orderhub.integrations.base import (
    BaseIntegration,
    EcommerceIntegration,
    IntegrationConfig,
    Page,
    ShippingIntegration,
    SyncResult,
    TestConnectionResult,
)
from orderhub.integrations.registry import IntegrationFactory, IntegrationRegistry, registry

__all__ = [
    "BaseIntegration",
    "EcommerceIntegration",
    "ShippingIntegration",
    "IntegrationConfig",
    "Page",
    "SyncResult",
    "TestConnectionResult",
    "IntegrationFactory",
    "IntegrationRegistry",
    "registry",
]
