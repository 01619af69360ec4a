"""
Carrier box sync schemas.
"""
from typing import Optional

from pydantic import Field

from orderhub.schemas.base import APIModel


class BoxSyncRequest(APIModel):
    warehouse_id: str
    carriers: list[str] = Field(default_factory=lambda: ["USPS"])
    account_id: str


class BoxSyncResponse(APIModel):
    success: bool
    count: int
    created: int = 0
    updated: int = 0
    preserved: int = 0
    deleted: int = 0
    message: str
    errors: list[str] = Field(default_factory=list)
    boxes: list[dict] = Field(default_factory=list)
    error: Optional[str] = None
