"""
Product model - canonical product from any connected platform.
"""
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.core.database import Base, JSONType
from orderhub.core.timeutils import utcnow


class Product(Base):
    """Platform product with inventory, weight and packaging data."""

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(255), primary_key=True, default=lambda: str(uuid4()))
    external_id: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    store_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    integration_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)

    # Product details
    sku: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(255))
    vendor: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(50), default="active")

    # Pricing and inventory
    price: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), default=0)
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0)
    stock_status: Mapped[str] = mapped_column(String(20), default="out_of_stock")
    warehouse_stock: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    variants: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)

    # Shipping
    weight_oz: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), default=0)
    box_type: Mapped[Optional[str]] = mapped_column(String(50))
    dimensions: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType)

    # Set when a user edits packaging data; sync never overwrites such records
    is_customized: Mapped[bool] = mapped_column(Boolean, default=False)

    # Timestamps
    source_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<Product {self.name[:30]}>"
