"""
Integration repository for data access operations.
"""
from typing import Optional

from sqlalchemy import select

from orderhub.models.integration import Integration, IntegrationStatus, IntegrationType
from orderhub.repositories.base import BaseRepository


class IntegrationRepository(BaseRepository[Integration]):
    """Repository for Integration model operations."""

    model = Integration

    async def get_for_store(self, store_id: str, provider: str) -> Optional[Integration]:
        """The integration of a provider attached to a store, newest first."""
        stmt = (
            select(Integration)
            .where(
                Integration.store_id == store_id,
                Integration.provider == provider.lower(),
            )
            .order_by(Integration.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_for_account(self, account_id: str, provider: str) -> Optional[Integration]:
        """Account-level integration (carriers are not store scoped)."""
        stmt = (
            select(Integration)
            .where(
                Integration.account_id == account_id,
                Integration.provider == provider.lower(),
                Integration.store_id.is_(None),
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_for_account(self, account_id: str) -> list[Integration]:
        return await self.find_by(account_id=account_id)

    async def list_enabled_ecommerce(self) -> list[Integration]:
        """Connected, enabled platform integrations eligible for scheduled sync."""
        stmt = select(Integration).where(
            Integration.type == IntegrationType.ECOMMERCE,
            Integration.status == IntegrationStatus.CONNECTED,
            Integration.enabled.is_(True),
            Integration.store_id.is_not(None),
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
