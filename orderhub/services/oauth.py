"""
OAuth flows for platform and carrier connections.

- OAuthStateCoordinator: issue and single-use consume of CSRF state tokens
- ShopifyOAuth / UPSOAuth: authorize URLs and authorization-code exchange
- complete_connection: persist tokens and (re)connect the integration
"""
import re
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.config import settings
from orderhub.core.exceptions import InvalidState, ShopMismatch, TokenExchangeFailed
from orderhub.core.logging import get_logger
from orderhub.core.security import generate_state_token, verify_oauth_hmac
from orderhub.core.timeutils import utcnow
from orderhub.integrations.base import config_model_for
from orderhub.integrations.registry import registry
from orderhub.models.integration import Integration, IntegrationStatus
from orderhub.repositories.credential_vault import CredentialVault
from orderhub.repositories.integration import IntegrationRepository
from orderhub.repositories.oauth_state import OAuthStateStore
from orderhub.repositories.store import StoreRepository
from orderhub.schemas.warehouse import WarehouseConfig

logger = get_logger(__name__)

SHOP_DOMAIN_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9\-]*\.myshopify\.com$")

UPS_OAUTH_BASE_URLS = {
    "production": "https://onlinetools.ups.com",
    "sandbox": "https://wwwcie.ups.com",
}


# ============================================
# STATE COORDINATOR
# ============================================

@dataclass(frozen=True)
class OAuthStateRecord:
    """Snapshot of a consumed state entry."""

    token: str
    provider: str
    shop: Optional[str] = None
    account_id: Optional[str] = None
    store_id: Optional[str] = None
    context: dict[str, Any] = field(default_factory=dict)


class OAuthStateCoordinator:
    """
    ISSUED -> CONSUMED, or a hard failure.

    A token validates at most once: the entry is deleted whenever a lookup
    finds it, whether or not the callback then passes the shop check.
    """

    def __init__(self, store: OAuthStateStore, ttl_seconds: Optional[int] = None) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.oauth_state_ttl_seconds

    async def issue(
        self,
        provider: str,
        *,
        shop: Optional[str] = None,
        account_id: Optional[str] = None,
        store_id: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> str:
        await self.store.purge_expired()
        token = generate_state_token()
        await self.store.put(
            token,
            provider=provider,
            ttl_seconds=self.ttl_seconds,
            shop=shop,
            account_id=account_id,
            store_id=store_id,
            context=context,
        )
        logger.info("OAuth state issued", provider=provider, shop=shop, store_id=store_id)
        return token

    async def consume(
        self,
        token: Optional[str],
        shop: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> OAuthStateRecord:
        """
        Validate and delete a state token.

        Raises:
            InvalidState: unknown, expired, already consumed or wrong provider
            ShopMismatch: the token was issued for a different shop
        """
        if not token:
            raise InvalidState()

        state = await self.store.get(token)
        record = None
        if state is not None:
            record = OAuthStateRecord(
                token=state.token,
                provider=state.provider,
                shop=state.shop,
                account_id=state.account_id,
                store_id=state.store_id,
                context=dict(state.context or {}),
            )

        # Expired rows are invisible to get() but still removed here
        claimed = await self.store.delete(token)
        if record is None:
            logger.warning("OAuth state not found or expired", provider=provider)
            raise InvalidState()
        if not claimed:
            logger.warning("OAuth state already consumed", provider=provider)
            raise InvalidState()

        if provider is not None and record.provider != provider:
            raise InvalidState()
        if shop is not None and record.shop != shop:
            logger.warning("OAuth shop mismatch", expected=record.shop, received=shop)
            raise ShopMismatch(record.shop, shop)
        return record


def read_tokens(response: httpx.Response) -> dict[str, Any]:
    """Token endpoint payload; anything without an access token is a failed exchange."""
    try:
        tokens = response.json()
    except ValueError:
        tokens = None
    if not isinstance(tokens, dict) or not tokens.get("access_token"):
        logger.error("Token endpoint returned no access token", status=response.status_code)
        raise TokenExchangeFailed(response.status_code, response.text[:500])
    return tokens


# ============================================
# SHOPIFY
# ============================================

class ShopifyOAuth:
    """Shopify authorization-code grant."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        scopes: Optional[str] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key or settings.shopify_api_key
        self.api_secret = api_secret or settings.shopify_api_secret
        self.scopes = scopes or settings.shopify_scopes
        self.transport = transport

    @staticmethod
    def normalize_shop_domain(shop: str) -> str:
        """'https://my-shop.myshopify.com/' or 'my-shop' -> 'my-shop.myshopify.com'"""
        domain = re.sub(r"^https?://", "", shop.strip().lower()).rstrip("/").split("/")[0]
        if ".myshopify.com" not in domain:
            domain = f"{domain}.myshopify.com"
        return domain

    @staticmethod
    def is_valid_shop_domain(shop: str) -> bool:
        return bool(SHOP_DOMAIN_PATTERN.match(shop))

    def build_authorize_url(self, shop: str, state: str, redirect_uri: str) -> str:
        query = urlencode({
            "client_id": self.api_key or "",
            "scope": self.scopes,
            "redirect_uri": redirect_uri,
            "state": state,
        })
        return f"https://{shop}/admin/oauth/authorize?{query}"

    def verify_callback(self, params: dict[str, str]) -> bool:
        return verify_oauth_hmac(params, self.api_secret)

    async def exchange_code(self, shop: str, code: str) -> dict[str, Any]:
        """
        POST the authorization code to the shop's token endpoint.

        Raises:
            TokenExchangeFailed: non-2xx answer or no usable token (body kept for diagnostics)
        """
        async with httpx.AsyncClient(transport=self.transport, timeout=30.0) as client:
            response = await client.post(
                f"https://{shop}/admin/oauth/access_token",
                json={
                    "client_id": self.api_key,
                    "client_secret": self.api_secret,
                    "code": code,
                },
            )

        if not response.is_success:
            logger.error("Shopify token exchange failed", shop=shop, status=response.status_code)
            raise TokenExchangeFailed(response.status_code, response.text)
        return read_tokens(response)


# ============================================
# UPS
# ============================================

class UPSOAuth:
    """UPS authorization-code grant with HTTP Basic client authentication."""

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.client_id = client_id or settings.ups_client_id
        self.client_secret = client_secret or settings.ups_client_secret
        self.redirect_uri = redirect_uri or settings.ups_redirect_uri
        self.transport = transport

    @staticmethod
    def base_url(environment: str) -> str:
        return UPS_OAUTH_BASE_URLS["production" if environment == "production" else "sandbox"]

    def build_authorize_url(self, state: str, environment: str = "production") -> str:
        query = urlencode({
            "client_id": self.client_id or "",
            "redirect_uri": self.redirect_uri or "",
            "response_type": "code",
            "scope": "read",
            "state": state,
        })
        return f"{self.base_url(environment)}/security/v1/oauth/authorize?{query}"

    async def exchange_code(self, code: str, environment: str = "production") -> dict[str, Any]:
        """
        Raises:
            TokenExchangeFailed: non-2xx answer or no usable token (body kept for diagnostics)
        """
        async with httpx.AsyncClient(
            transport=self.transport,
            timeout=30.0,
            auth=httpx.BasicAuth(self.client_id or "", self.client_secret or ""),
        ) as client:
            response = await client.post(
                f"{self.base_url(environment)}/security/v1/oauth/token",
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.redirect_uri or "",
                },
            )

        if not response.is_success:
            logger.error("UPS token exchange failed", environment=environment, status=response.status_code)
            raise TokenExchangeFailed(response.status_code, response.text)
        return read_tokens(response)


# ============================================
# CONNECTION
# ============================================

async def complete_connection(
    session: AsyncSession,
    *,
    provider: str,
    account_id: str,
    store_id: Optional[str],
    config: dict[str, Any],
    credentials: dict[str, Any],
    warehouse_config: Optional[dict[str, Any]] = None,
) -> Integration:
    """
    Create or reconnect the integration and store its tokens in the vault.

    Platform integrations are store scoped; carriers are account scoped when
    no store is given.
    """
    provider = provider.lower()
    adapter_cls = registry.get(provider)
    if adapter_cls is None:
        raise ValueError(f"Unsupported provider: {provider}")

    config_model = config_model_for(provider)
    validated = config_model.model_validate({**config, "provider": provider}).model_dump()

    repo = IntegrationRepository(session)
    if store_id:
        integration = await repo.get_for_store(store_id, provider)
    else:
        integration = await repo.get_for_account(account_id, provider)

    now = utcnow()
    if integration is None:
        integration = await repo.create({
            "name": adapter_cls.display_name,
            "type": adapter_cls.integration_type,
            "provider": provider,
            "status": IntegrationStatus.CONNECTED,
            "enabled": True,
            "store_id": store_id,
            "account_id": account_id,
            "config": validated,
            "features": list(adapter_cls.features),
            "connected_at": now,
        })
        action = "Created"
    else:
        integration = await repo.update(integration, {
            "status": IntegrationStatus.CONNECTED,
            "enabled": True,
            "account_id": account_id,
            "config": {**(integration.config or {}), **validated},
            "connected_at": now,
            "last_error": None,
        })
        action = "Reconnected"

    await CredentialVault(session).set(account_id, integration.id, credentials)

    if store_id:
        stores = StoreRepository(session)
        store = await stores.get_by_id(store_id)
        if store is not None:
            shop_domain = validated.get("shop_domain")
            if shop_domain and not store.domain:
                store.domain = shop_domain
            if warehouse_config:
                await stores.set_warehouse_config(
                    store,
                    WarehouseConfig.model_validate(warehouse_config).to_storage(),
                )

    logger.info(
        f"{action} integration",
        provider=provider,
        integration_id=integration.id,
        store_id=store_id,
    )
    return integration
