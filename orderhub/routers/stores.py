"""
Store warehouse routing API routes.
"""
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from orderhub.core.database import DbSession
from orderhub.core.logging import get_logger
from orderhub.models.store import Store
from orderhub.repositories.entity_store import EntityStore
from orderhub.repositories.store import StoreRepository, WarehouseRepository
from orderhub.schemas.warehouse import (
    AutoAssignRequest,
    RerouteResponse,
    WarehouseAssignment,
    WarehouseConfig,
)
from orderhub.services.warehouse_router import WarehouseRouter, auto_assign, load_config

logger = get_logger(__name__)

router = APIRouter(prefix="/stores", tags=["stores"])


async def get_store_repository(session: DbSession) -> StoreRepository:
    """Dependency to get store repository."""
    return StoreRepository(session)


async def _get_store(repo: StoreRepository, store_id: str) -> Store:
    store = await repo.get_by_id(store_id)
    if not store:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Store not found",
        )
    return store


@router.get("/{store_id}/warehouse-config", response_model=WarehouseConfig)
async def get_warehouse_config(
    store_id: str,
    repo: Annotated[StoreRepository, Depends(get_store_repository)],
) -> WarehouseConfig:
    store = await _get_store(repo, store_id)
    return load_config(store.warehouse_config)


@router.put("/{store_id}/warehouse-config", response_model=WarehouseConfig)
async def put_warehouse_config(
    store_id: str,
    config: WarehouseConfig,
    repo: Annotated[StoreRepository, Depends(get_store_repository)],
) -> WarehouseConfig:
    """Replace the store's routing configuration."""
    store = await _get_store(repo, store_id)
    await repo.set_warehouse_config(store, config.to_storage())
    logger.info("Warehouse config saved", store_id=store_id, mode=config.mode, assignments=len(config.assignments))
    return config


@router.post("/{store_id}/warehouse-config/auto-assign", response_model=WarehouseConfig)
async def auto_assign_states(
    store_id: str,
    session: DbSession,
    repo: Annotated[StoreRepository, Depends(get_store_repository)],
    body: Optional[AutoAssignRequest] = None,
) -> WarehouseConfig:
    """
    Spread all 50 states over the store's warehouse assignments by region,
    then by proximity, and switch the store to region routing.
    """
    store = await _get_store(repo, store_id)
    config = load_config(store.warehouse_config)
    assignments = list(config.assignments)

    if body is not None and body.warehouse_ids:
        by_warehouse = {a.warehouse_id: a for a in assignments}
        assignments = [
            by_warehouse.get(warehouse_id) or WarehouseAssignment(warehouse_id=warehouse_id, priority=index + 1)
            for index, warehouse_id in enumerate(body.warehouse_ids)
        ]

    if not assignments:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No warehouses to assign states to",
        )

    warehouses = await WarehouseRepository(session).list_for_account(store.account_id)
    warehouse_states = {w.id: w.state for w in warehouses}

    config.assignments = auto_assign(assignments, warehouse_states)
    config.mode = "advanced"
    config.enable_region_routing = True
    await repo.set_warehouse_config(store, config.to_storage())
    return config


@router.post("/{store_id}/orders/reroute", response_model=RerouteResponse)
async def reroute_orders(
    store_id: str,
    session: DbSession,
    repo: Annotated[StoreRepository, Depends(get_store_repository)],
) -> RerouteResponse:
    """Recompute the warehouse of every order without a manual override."""
    store = await _get_store(repo, store_id)
    active = await WarehouseRepository(session).active_ids(store.account_id)
    router_ = WarehouseRouter(store.warehouse_config, active)

    entities = EntityStore(session)
    orders = await entities.list("orders", {"store_id": store_id, "warehouse_override": False})

    changed = []
    unassigned = 0
    for order in orders:
        routed = router_.assign(order)
        if routed["warehouse_id"] is None:
            unassigned += 1
        if routed["warehouse_id"] != order.get("warehouse_id"):
            changed.append(routed)

    await entities.upsert_many("orders", changed)
    logger.info("Orders rerouted", store_id=store_id, rerouted=len(changed), unassigned=unassigned)
    return RerouteResponse(store_id=store_id, rerouted=len(changed), unassigned=unassigned)
