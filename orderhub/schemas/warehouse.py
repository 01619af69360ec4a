"""
Warehouse routing schemas (per-store WarehouseConfig).
"""
from typing import Literal, Optional
from uuid import uuid4

from pydantic import Field

from orderhub.schemas.base import APIModel


class RegionAssignment(APIModel):
    """States of one country served by an assignment."""

    country: str = "United States"
    country_code: str = "US"
    states: list[str] = Field(default_factory=list)


class WarehouseAssignment(APIModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    warehouse_id: str
    priority: int = 1
    regions: list[RegionAssignment] = Field(default_factory=list)
    is_active: bool = True


class WarehouseConfig(APIModel):
    mode: Literal["simple", "advanced"] = "simple"
    primary_warehouse_id: Optional[str] = None
    fallback_warehouse_id: Optional[str] = None
    enable_region_routing: bool = False
    assignments: list[WarehouseAssignment] = Field(default_factory=list)

    def to_storage(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class AutoAssignRequest(APIModel):
    """Optional explicit warehouse list; defaults to the store's assignments."""

    warehouse_ids: Optional[list[str]] = None


class RerouteResponse(APIModel):
    store_id: str
    rerouted: int
    unassigned: int
