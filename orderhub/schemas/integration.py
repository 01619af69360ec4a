"""
Integration Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import Field

from orderhub.schemas.base import APIModel


class IntegrationResponse(APIModel):
    id: str
    name: str
    type: str
    provider: str
    status: str
    enabled: bool
    store_id: Optional[str] = None
    account_id: str
    config: dict[str, Any] = Field(default_factory=dict)
    features: list[str] = Field(default_factory=list)
    connected_at: Optional[datetime] = None
    last_sync_at: Optional[datetime] = None
    last_error: Optional[str] = None


class IntegrationUpdate(APIModel):
    """Partial update; `config` is deep-merged into the stored config."""

    name: Optional[str] = None
    enabled: Optional[bool] = None
    status: Optional[Literal["connected", "disconnected", "error"]] = None
    store_id: Optional[str] = None
    features: Optional[list[str]] = None
    config: Optional[dict[str, Any]] = None


class IntegrationDeleteResponse(APIModel):
    id: str
    deleted: bool = True
    orders_deleted: int = 0
    products_deleted: int = 0


class TestConnectionResponse(APIModel):
    __test__ = False  # not a pytest class

    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    details: Optional[dict[str, Any]] = None
