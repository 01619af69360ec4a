"""
Shipping box model - carrier packaging and user-defined box presets.
"""
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.core.database import Base, JSONType
from orderhub.core.timeutils import utcnow


class ShippingBox(Base):
    """
    A box available to a warehouse.

    kind='box' rows come from carrier catalogs (or are custom boxes);
    kind='preset' rows are user packaging presets. Both share the
    customization-preserving merge.
    """

    __tablename__ = "shipping_boxes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid4()))
    warehouse_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    kind: Mapped[str] = mapped_column(String(10), default="box")

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    box_type: Mapped[str] = mapped_column(String(20), default="custom")  # custom | usps | ups
    carrier_code: Mapped[Optional[str]] = mapped_column(String(100))
    mail_class: Mapped[Optional[str]] = mapped_column(String(100))
    package_type: Mapped[Optional[str]] = mapped_column(String(100))

    # {"length", "width", "height", "unit"} and {"max", "unit"}
    dimensions: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    weight: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)

    flat_rate: Mapped[bool] = mapped_column(Boolean, default=False)
    flat_rate_price: Mapped[Optional[float]] = mapped_column(Numeric(10, 2, asdecimal=False))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Variable carrier boxes ("Your Own Box") take user-entered dimensions
    is_editable: Mapped[bool] = mapped_column(Boolean, default=False)
    needs_dimensions: Mapped[bool] = mapped_column(Boolean, default=False)
    is_customized: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<ShippingBox {self.name} ({self.box_type})>"
