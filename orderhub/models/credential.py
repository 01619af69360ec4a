"""
Credential model - encrypted per-account, per-integration secrets.
"""
from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.core.database import Base
from orderhub.core.timeutils import utcnow


class Credential(Base):
    """Fernet-encrypted JSON document of tokens/keys for one integration."""

    __tablename__ = "credentials"
    __table_args__ = (
        UniqueConstraint("account_id", "integration_id", name="uq_credentials_account_integration"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid4()))
    account_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    integration_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    secret_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    def __repr__(self) -> str:
        return f"<Credential account={self.account_id} integration={self.integration_id}>"
