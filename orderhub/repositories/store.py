"""
Store and warehouse repositories.
"""
from typing import Any, Optional

from sqlalchemy import select

from orderhub.models.store import Store, Warehouse
from orderhub.repositories.base import BaseRepository


class StoreRepository(BaseRepository[Store]):
    """Repository for Store model operations."""

    model = Store

    async def get_by_domain(self, domain: str) -> Optional[Store]:
        """Get a store by its platform shop domain."""
        return await self.find_one_by(domain=domain)

    async def set_warehouse_config(self, store: Store, config: dict[str, Any]) -> Store:
        # Reassign so the JSON column is flagged dirty
        store.warehouse_config = dict(config)
        await self.session.flush()
        return store


class WarehouseRepository(BaseRepository[Warehouse]):
    """Repository for Warehouse model operations."""

    model = Warehouse

    async def list_for_account(self, account_id: str) -> list[Warehouse]:
        stmt = select(Warehouse).where(Warehouse.account_id == account_id).order_by(Warehouse.created_at)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def active_ids(self, account_id: str) -> Optional[set[str]]:
        """
        Ids of the account's active warehouses, or None when the account has
        no warehouse rows at all (routing is then left unfiltered).
        """
        stmt = select(Warehouse.id, Warehouse.is_active).where(Warehouse.account_id == account_id)
        rows = (await self.session.execute(stmt)).all()
        if not rows:
            return None
        return {warehouse_id for warehouse_id, is_active in rows if is_active}
