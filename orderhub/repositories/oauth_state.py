"""
TTL-backed OAuth state storage.
"""
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.logging import get_logger
from orderhub.core.timeutils import ensure_utc, utcnow
from orderhub.models.oauth_state import OAuthState

logger = get_logger(__name__)


class OAuthStateStore:
    """Table-backed state store; expired rows are invisible and swept explicitly."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def put(
        self,
        token: str,
        *,
        provider: str,
        ttl_seconds: int,
        shop: Optional[str] = None,
        account_id: Optional[str] = None,
        store_id: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> OAuthState:
        now = utcnow()
        state = OAuthState(
            token=token,
            provider=provider,
            shop=shop,
            account_id=account_id,
            store_id=store_id,
            context=context or {},
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )
        self.session.add(state)
        await self.session.flush()
        return state

    async def get(self, token: str) -> Optional[OAuthState]:
        """Stored, unexpired entry for the token."""
        state = await self.session.get(OAuthState, token)
        if state is None:
            return None
        if ensure_utc(state.expires_at) <= utcnow():
            return None
        return state

    async def delete(self, token: str) -> bool:
        """
        Remove the entry. True only for the caller whose delete removed the row,
        so concurrent consumers of one token cannot both succeed.
        """
        result = await self.session.execute(delete(OAuthState).where(OAuthState.token == token))
        await self.session.flush()
        return bool(result.rowcount)

    async def purge_expired(self) -> int:
        """Delete every expired entry; returns the number removed."""
        result = await self.session.execute(
            delete(OAuthState)
            .where(OAuthState.expires_at <= utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()
        removed = result.rowcount or 0
        if removed:
            logger.info("Purged expired OAuth states", count=removed)
        return removed
