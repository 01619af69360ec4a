"""
Pydantic schemas for API request/response validation.
"""
from orderhub.schemas.integration import (
    IntegrationDeleteResponse,
    IntegrationResponse,
    IntegrationUpdate,
    TestConnectionResponse,
)
from orderhub.schemas.shipping import BoxSyncRequest, BoxSyncResponse
from orderhub.schemas.sync import SyncRequest, SyncResponse
from orderhub.schemas.warehouse import (
    RegionAssignment,
    WarehouseAssignment,
    WarehouseConfig,
)

__all__ = [
    "IntegrationResponse",
    "IntegrationUpdate",
    "IntegrationDeleteResponse",
    "TestConnectionResponse",
    "BoxSyncRequest",
    "BoxSyncResponse",
    "SyncRequest",
    "SyncResponse",
    "RegionAssignment",
    "WarehouseAssignment",
    "WarehouseConfig",
]
