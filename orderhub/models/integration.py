"""
Integration model - a connected shipping carrier or e-commerce platform.
"""
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.core.database import Base, JSONType
from orderhub.core.timeutils import utcnow


class IntegrationType:
    SHIPPING = "shipping"
    ECOMMERCE = "ecommerce"


class IntegrationStatus:
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class Integration(Base):
    """
    Store-scoped integration record.

    `config` is provider-tagged: its shape is validated by the model matching
    `provider` (see orderhub.integrations.base.config_model_for).
    """

    __tablename__ = "integrations"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    provider: Mapped[str] = mapped_column(String(50), index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=IntegrationStatus.DISCONNECTED)
    enabled: Mapped[bool] = mapped_column(Boolean, default=False)

    store_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    account_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)

    config: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    features: Mapped[list[str]] = mapped_column(JSONType, default=list)

    connected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_error: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    @property
    def is_connected(self) -> bool:
        return self.status == IntegrationStatus.CONNECTED and self.enabled

    def __repr__(self) -> str:
        return f"<Integration {self.provider} store={self.store_id} status={self.status}>"
