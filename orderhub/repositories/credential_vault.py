"""
Credential vault - encrypted credentials keyed by (account, integration).
"""
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.logging import get_logger
from orderhub.core.security import decrypt_payload, encrypt_payload
from orderhub.models.credential import Credential

logger = get_logger(__name__)


class CredentialVault:
    """
    Stores OAuth tokens and API keys encrypted at rest.

    Writes are last-writer-wins; callers serialize writes per key through the
    one-sync-per-integration rule.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _row(self, account_id: str, integration_id: str) -> Optional[Credential]:
        stmt = select(Credential).where(
            Credential.account_id == account_id,
            Credential.integration_id == integration_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, account_id: str, integration_id: str) -> Optional[dict[str, Any]]:
        row = await self._row(account_id, integration_id)
        if row is None:
            return None
        try:
            return decrypt_payload(row.secret_encrypted)
        except ValueError:
            # Key rotated or row corrupted: behave as if nothing is stored
            logger.error(
                "Stored credentials could not be decrypted",
                account_id=account_id,
                integration_id=integration_id,
            )
            return None

    async def set(self, account_id: str, integration_id: str, credentials: dict[str, Any]) -> None:
        encrypted = encrypt_payload(credentials)
        row = await self._row(account_id, integration_id)
        if row is None:
            self.session.add(
                Credential(
                    account_id=account_id,
                    integration_id=integration_id,
                    secret_encrypted=encrypted,
                )
            )
        else:
            row.secret_encrypted = encrypted
        await self.session.flush()
        logger.info("Credentials stored", account_id=account_id, integration_id=integration_id)

    async def clear(self, account_id: str, integration_id: str) -> None:
        await self.session.execute(
            delete(Credential).where(
                Credential.account_id == account_id,
                Credential.integration_id == integration_id,
            )
        )
        await self.session.flush()
        logger.info("Credentials cleared", account_id=account_id, integration_id=integration_id)
