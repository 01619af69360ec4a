"""
Order model - canonical order from any connected platform.
"""
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.core.database import Base, JSONType
from orderhub.core.timeutils import utcnow


class Order(Base):
    """Platform order; `(external_id, store_id)` is the natural merge key."""

    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_store_external", "store_id", "external_id"),
    )

    id: Mapped[str] = mapped_column(String(255), primary_key=True, default=lambda: str(uuid4()))
    external_id: Mapped[Optional[str]] = mapped_column(String(255))
    store_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    account_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    integration_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    platform: Mapped[Optional[str]] = mapped_column(String(50))

    # Display
    order_number: Mapped[Optional[str]] = mapped_column(String(50))  # e.g., "#1001"
    customer_name: Mapped[Optional[str]] = mapped_column(String(255))
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), index=True)

    # Financial
    total_amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), default=0)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    financial_status: Mapped[str] = mapped_column(String(50), default="pending")
    fulfillment_status: Mapped[str] = mapped_column(String(50), default="unfulfilled")
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100))

    # Shipping address
    shipping_first_name: Mapped[Optional[str]] = mapped_column(String(255))
    shipping_last_name: Mapped[Optional[str]] = mapped_column(String(255))
    shipping_address1: Mapped[Optional[str]] = mapped_column(String(255))
    shipping_address2: Mapped[Optional[str]] = mapped_column(String(255))
    shipping_city: Mapped[Optional[str]] = mapped_column(String(255))
    shipping_province: Mapped[Optional[str]] = mapped_column(String(100))
    shipping_zip: Mapped[Optional[str]] = mapped_column(String(20))
    shipping_country: Mapped[Optional[str]] = mapped_column(String(100))
    shipping_country_code: Mapped[Optional[str]] = mapped_column(String(2))
    requested_shipping: Mapped[Optional[str]] = mapped_column(String(255))

    # Line items (stored as JSON)
    line_items: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    item_count: Mapped[int] = mapped_column(Integer, default=0)

    # Routing; warehouse_override pins a manually chosen warehouse across syncs
    warehouse_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    warehouse_override: Mapped[bool] = mapped_column(Boolean, default=False)

    # Timestamps
    order_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    source_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<Order {self.order_number or self.id}>"
