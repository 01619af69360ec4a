"""
OAuth state model - short-lived, single-use CSRF tokens.
"""
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.core.database import Base, JSONType
from orderhub.core.timeutils import utcnow


class OAuthState(Base):
    """State token issued at authorization start, deleted when consumed."""

    __tablename__ = "oauth_states"

    token: Mapped[str] = mapped_column(String(128), primary_key=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    shop: Mapped[Optional[str]] = mapped_column(String(255))
    account_id: Mapped[Optional[str]] = mapped_column(String(64))
    store_id: Mapped[Optional[str]] = mapped_column(String(64))
    # e.g. UPS account number / environment, or warehouse config chosen at connect time
    context: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)

    def __repr__(self) -> str:
        return f"<OAuthState {self.provider} shop={self.shop}>"
