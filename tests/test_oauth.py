"""
Tests for the OAuth state coordinator and token exchange clients.
"""
import asyncio
import base64
import json
from datetime import timedelta

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from orderhub.core.exceptions import InvalidState, ShopMismatch, TokenExchangeFailed
from orderhub.core.timeutils import utcnow
from orderhub.models.oauth_state import OAuthState
from orderhub.repositories.oauth_state import OAuthStateStore
from orderhub.services.oauth import OAuthStateCoordinator, ShopifyOAuth, UPSOAuth

SHOP = "test-shop.myshopify.com"


@pytest.fixture
def coordinator(session: AsyncSession) -> OAuthStateCoordinator:
    return OAuthStateCoordinator(OAuthStateStore(session), ttl_seconds=600)


class TestOAuthStateCoordinator:
    async def test_state_validates_exactly_once(self, coordinator: OAuthStateCoordinator):
        token = await coordinator.issue("shopify", shop=SHOP, store_id="store-1", account_id="acct-1")

        record = await coordinator.consume(token, shop=SHOP)

        assert record.store_id == "store-1"
        assert record.account_id == "acct-1"
        with pytest.raises(InvalidState):
            await coordinator.consume(token, shop=SHOP)

    async def test_concurrent_callbacks_consume_once(
        self, engine: AsyncEngine, session: AsyncSession, coordinator: OAuthStateCoordinator
    ):
        token = await coordinator.issue("shopify", shop=SHOP, store_id="store-1")
        await session.commit()
        factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)

        async def callback() -> str:
            async with factory() as other:
                try:
                    await OAuthStateCoordinator(OAuthStateStore(other)).consume(token, shop=SHOP)
                    return "ok"
                except InvalidState:
                    return "rejected"
                finally:
                    await other.commit()

        results = await asyncio.gather(callback(), callback())

        assert sorted(results) == ["ok", "rejected"]

    async def test_unknown_and_empty_tokens(self, coordinator: OAuthStateCoordinator):
        with pytest.raises(InvalidState):
            await coordinator.consume("abc")
        with pytest.raises(InvalidState):
            await coordinator.consume(None)

    async def test_shop_mismatch_still_consumes(self, coordinator: OAuthStateCoordinator):
        token = await coordinator.issue("shopify", shop=SHOP)

        with pytest.raises(ShopMismatch):
            await coordinator.consume(token, shop="other-shop.myshopify.com")
        with pytest.raises(InvalidState):
            await coordinator.consume(token, shop=SHOP)

    async def test_provider_must_match(self, coordinator: OAuthStateCoordinator):
        token = await coordinator.issue("ups", account_id="acct-1")

        with pytest.raises(InvalidState):
            await coordinator.consume(token, provider="shopify")

    async def test_expired_state_is_rejected_and_removed(self, session: AsyncSession, coordinator: OAuthStateCoordinator):
        now = utcnow()
        session.add(OAuthState(
            token="old",
            provider="shopify",
            shop=SHOP,
            context={},
            created_at=now - timedelta(hours=1),
            expires_at=now - timedelta(minutes=1),
        ))
        await session.flush()

        with pytest.raises(InvalidState):
            await coordinator.consume("old", shop=SHOP)
        assert await session.get(OAuthState, "old") is None

    async def test_issue_sweeps_expired_states(self, session: AsyncSession, coordinator: OAuthStateCoordinator):
        now = utcnow()
        session.add(OAuthState(
            token="stale",
            provider="ups",
            context={},
            created_at=now - timedelta(hours=1),
            expires_at=now - timedelta(minutes=5),
        ))
        await session.commit()

        await coordinator.issue("ups", account_id="acct-1")

        assert await OAuthStateStore(session).purge_expired() == 0

    async def test_context_round_trips(self, coordinator: OAuthStateCoordinator):
        token = await coordinator.issue("shopify", shop=SHOP, context={"warehouse_config": {"mode": "simple"}})

        record = await coordinator.consume(token, shop=SHOP)

        assert record.context == {"warehouse_config": {"mode": "simple"}}


class TestShopifyOAuth:
    @pytest.mark.parametrize(
        "raw",
        [
            "test-shop",
            "Test-Shop.myshopify.com",
            "https://test-shop.myshopify.com/",
            "https://test-shop.myshopify.com/admin",
        ],
    )
    def test_normalize_shop_domain(self, raw: str):
        assert ShopifyOAuth.normalize_shop_domain(raw) == SHOP

    def test_shop_domain_validation(self):
        assert ShopifyOAuth.is_valid_shop_domain(SHOP)
        assert not ShopifyOAuth.is_valid_shop_domain("-bad.myshopify.com")
        assert not ShopifyOAuth.is_valid_shop_domain("evil.com")

    def test_authorize_url(self):
        oauth = ShopifyOAuth(api_key="key", api_secret="secret", scopes="read_orders")

        url = httpx.URL(oauth.build_authorize_url(SHOP, "st", "http://test/auth/shopify/callback"))

        assert url.host == SHOP
        assert url.path == "/admin/oauth/authorize"
        assert url.params["client_id"] == "key"
        assert url.params["scope"] == "read_orders"
        assert url.params["state"] == "st"

    async def test_exchange_code_posts_json(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"access_token": "shpat_new", "scope": "read_orders"})

        oauth = ShopifyOAuth(api_key="key", api_secret="secret", transport=httpx.MockTransport(handler))

        tokens = await oauth.exchange_code(SHOP, "code-1")

        assert tokens["access_token"] == "shpat_new"
        assert seen["url"] == f"https://{SHOP}/admin/oauth/access_token"
        assert seen["body"] == {"client_id": "key", "client_secret": "secret", "code": "code-1"}

    async def test_exchange_failure_keeps_body(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(400, text="invalid_request"))
        oauth = ShopifyOAuth(api_key="key", api_secret="secret", transport=transport)

        with pytest.raises(TokenExchangeFailed) as exc_info:
            await oauth.exchange_code(SHOP, "bad")

        assert exc_info.value.status_code == 400
        assert exc_info.value.body == "invalid_request"

    async def test_exchange_without_token_payload(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>ok</html>"))
        oauth = ShopifyOAuth(api_key="key", api_secret="secret", transport=transport)

        with pytest.raises(TokenExchangeFailed) as exc_info:
            await oauth.exchange_code(SHOP, "code-1")

        assert exc_info.value.status_code == 200
        assert exc_info.value.body == "<html>ok</html>"


class TestUPSOAuth:
    def test_authorize_url_uses_environment(self):
        oauth = UPSOAuth(client_id="cid", client_secret="cs", redirect_uri="http://test/cb")

        sandbox = httpx.URL(oauth.build_authorize_url("st", "sandbox"))
        production = httpx.URL(oauth.build_authorize_url("st", "production"))

        assert sandbox.host == "wwwcie.ups.com"
        assert production.host == "onlinetools.ups.com"
        assert production.params["response_type"] == "code"

    async def test_exchange_code_uses_basic_auth_form(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = request.content.decode()
            return httpx.Response(200, json={"access_token": "at", "refresh_token": "rt", "expires_in": 14399})

        oauth = UPSOAuth(
            client_id="cid",
            client_secret="cs",
            redirect_uri="http://test/cb",
            transport=httpx.MockTransport(handler),
        )

        tokens = await oauth.exchange_code("code-1", "sandbox")

        assert tokens["refresh_token"] == "rt"
        assert seen["url"] == "https://wwwcie.ups.com/security/v1/oauth/token"
        assert seen["auth"] == "Basic " + base64.b64encode(b"cid:cs").decode()
        assert "grant_type=authorization_code" in seen["body"]
        assert "code=code-1" in seen["body"]
