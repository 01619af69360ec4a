"""
Sync watermark model - high-water mark of synced platform timestamps.
"""
from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.core.database import Base
from orderhub.core.timeutils import utcnow


class SyncWatermark(Base):
    """Max `updatedAt` merged for one (integration, store, entity type)."""

    __tablename__ = "sync_watermarks"
    __table_args__ = (
        UniqueConstraint(
            "integration_id",
            "store_id",
            "entity_type",
            name="uq_sync_watermarks_key",
        ),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid4()))
    integration_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    store_id: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    watermark: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )
