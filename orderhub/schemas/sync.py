"""
Sync trigger schemas.
"""
from typing import Literal, Optional

from pydantic import Field, model_validator

from orderhub.schemas.base import APIModel

SyncType = Literal["orders", "products", "all"]


class SyncRequest(APIModel):
    """
    Body of POST /integrations/{provider}/sync.

    syncType is validated in the handler so an unknown value maps to 400.
    `accessToken` is used for this run only and never persisted.
    """

    shop: Optional[str] = None
    store_id: Optional[str] = None
    access_token: Optional[str] = None
    account_id: Optional[str] = None
    sync_type: str = "all"
    warehouse_id: Optional[str] = None
    force_full_sync: bool = False

    @model_validator(mode="after")
    def require_store_reference(self) -> "SyncRequest":
        if not self.shop and not self.store_id:
            raise ValueError("Either shop or storeId is required")
        return self


class SyncResponse(APIModel):
    success: bool
    order_count: Optional[int] = None
    product_count: Optional[int] = None
    is_incremental: Optional[bool] = None
    partial: bool = False
    message: str
    error: Optional[str] = None
    errors: list[str] = Field(default_factory=list)
