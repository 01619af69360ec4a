"""
Sync watermark repository.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select

from orderhub.core.timeutils import ensure_utc
from orderhub.models.sync_watermark import SyncWatermark
from orderhub.repositories.base import BaseRepository


class WatermarkRepository(BaseRepository[SyncWatermark]):
    """Repository for SyncWatermark model operations."""

    model = SyncWatermark

    async def _row(self, integration_id: str, store_id: str, entity_type: str) -> Optional[SyncWatermark]:
        stmt = select(SyncWatermark).where(
            SyncWatermark.integration_id == integration_id,
            SyncWatermark.store_id == store_id,
            SyncWatermark.entity_type == entity_type,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, integration_id: str, store_id: str, entity_type: str) -> Optional[datetime]:
        row = await self._row(integration_id, store_id, entity_type)
        return ensure_utc(row.watermark) if row else None

    async def advance(
        self,
        integration_id: str,
        store_id: str,
        entity_type: str,
        watermark: datetime,
    ) -> datetime:
        """Move the watermark forward; never moves it back."""
        watermark = ensure_utc(watermark)
        row = await self._row(integration_id, store_id, entity_type)
        if row is None:
            self.session.add(
                SyncWatermark(
                    integration_id=integration_id,
                    store_id=store_id,
                    entity_type=entity_type,
                    watermark=watermark,
                )
            )
        elif ensure_utc(row.watermark) < watermark:
            row.watermark = watermark
        else:
            watermark = ensure_utc(row.watermark)
        await self.session.flush()
        return watermark

    async def clear(self, integration_id: str) -> None:
        await self.session.execute(
            delete(SyncWatermark).where(SyncWatermark.integration_id == integration_id)
        )
        await self.session.flush()
