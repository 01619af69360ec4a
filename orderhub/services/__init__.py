"""
Services package for business logic layer.
"""
from orderhub.services.integration_service import IntegrationService
from orderhub.services.merge import MergeReport, OrderMerger, box_merger, product_merger
from orderhub.services.oauth import OAuthStateCoordinator, ShopifyOAuth, UPSOAuth, complete_connection
from orderhub.services.sync import SyncOrchestrator, SyncOutcome, sync_all_enabled
from orderhub.services.warehouse_router import WarehouseRouter, auto_assign

__all__ = [
    "IntegrationService",
    "MergeReport",
    "OrderMerger",
    "box_merger",
    "product_merger",
    "OAuthStateCoordinator",
    "ShopifyOAuth",
    "UPSOAuth",
    "complete_connection",
    "SyncOrchestrator",
    "SyncOutcome",
    "sync_all_enabled",
    "WarehouseRouter",
    "auto_assign",
]
