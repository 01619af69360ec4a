"""
Shopify GDPR webhook payloads.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class GDPRCustomer(BaseModel):
    id: Optional[int | str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class CustomersDataRequest(BaseModel):
    """customers/data_request webhook body (snake_case on the wire)."""

    model_config = ConfigDict(extra="allow")

    shop_id: Optional[int | str] = None
    shop_domain: str
    customer: GDPRCustomer = Field(default_factory=GDPRCustomer)
    orders_requested: list[int | str] = Field(default_factory=list)


class CustomersDataResponse(BaseModel):
    customer: GDPRCustomer
    orders: list[dict[str, Any]] = Field(default_factory=list)
