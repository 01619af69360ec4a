"""
OAuth connection flows for Shopify and UPS.

Both callbacks always end in a redirect back to the dashboard; tokens go to
the credential vault and never into the redirect URL.
"""
import json
from typing import Annotated, Any, Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse
from pydantic import ValidationError

from orderhub.core.config import settings
from orderhub.core.database import DbSession
from orderhub.core.exceptions import HmacVerificationFailed, OAuthError
from orderhub.core.logging import get_logger
from orderhub.repositories.oauth_state import OAuthStateStore
from orderhub.repositories.store import StoreRepository
from orderhub.services.oauth import (
    OAuthStateCoordinator,
    ShopifyOAuth,
    UPSOAuth,
    complete_connection,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

UPS_STATE_COOKIE = "ups_oauth_state"
UPS_ACCOUNT_COOKIE = "ups_account_number"
UPS_ENVIRONMENT_COOKIE = "ups_environment"
UPS_COOKIES = (UPS_STATE_COOKIE, UPS_ACCOUNT_COOKIE, UPS_ENVIRONMENT_COOKIE)


def get_shopify_oauth() -> ShopifyOAuth:
    """Dependency to get the Shopify OAuth client."""
    return ShopifyOAuth()


def get_ups_oauth() -> UPSOAuth:
    """Dependency to get the UPS OAuth client."""
    return UPSOAuth()


def dashboard_redirect(**params: Any) -> RedirectResponse:
    query = urlencode({key: value for key, value in params.items() if value is not None})
    url = f"{settings.app_url.rstrip('/')}{settings.dashboard_path}?{query}"
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


async def _request_params(request: Request) -> dict[str, str]:
    """Query parameters, plus form fields when the callback arrives as a POST."""
    params = dict(request.query_params)
    if request.method == "POST":
        content_type = request.headers.get("content-type", "")
        if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
            form = await request.form()
            params.update({key: str(value) for key, value in form.items()})
    return params


def _parse_warehouse_config(raw: Optional[str]) -> Optional[dict[str, Any]]:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        # A malformed config must not block the OAuth flow
        logger.warning("Ignoring unparseable warehouseConfig")
        return None
    return parsed if isinstance(parsed, dict) else None


# ============================================
# SHOPIFY
# ============================================

@router.get("/shopify")
async def shopify_authorize(
    request: Request,
    session: DbSession,
    oauth: Annotated[ShopifyOAuth, Depends(get_shopify_oauth)],
    shop: str,
    store_id: Annotated[str, Query(alias="storeId")],
    account_id: Annotated[Optional[str], Query(alias="accountId")] = None,
    warehouse_config: Annotated[Optional[str], Query(alias="warehouseConfig")] = None,
) -> RedirectResponse:
    """Start the Shopify install: issue a state token and redirect to Shopify."""
    normalized = oauth.normalize_shop_domain(shop)
    if not oauth.is_valid_shop_domain(normalized):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid shop URL format",
        )

    if account_id is None:
        store = await StoreRepository(session).get_by_id(store_id)
        account_id = store.account_id if store else None

    coordinator = OAuthStateCoordinator(OAuthStateStore(session))
    state = await coordinator.issue(
        "shopify",
        shop=normalized,
        account_id=account_id,
        store_id=store_id,
        context={"warehouse_config": _parse_warehouse_config(warehouse_config)},
    )
    await session.commit()

    redirect_uri = settings.shopify_redirect_uri or str(request.url_for("shopify_callback"))
    logger.info("Redirecting to Shopify authorization", shop=normalized, store_id=store_id)
    return RedirectResponse(
        oauth.build_authorize_url(normalized, state, redirect_uri),
        status_code=status.HTTP_302_FOUND,
    )


@router.api_route("/shopify/callback", methods=["GET", "POST"], name="shopify_callback")
async def shopify_callback(
    request: Request,
    session: DbSession,
    oauth: Annotated[ShopifyOAuth, Depends(get_shopify_oauth)],
) -> RedirectResponse:
    """
    Finish the Shopify install.

    Order of checks: state (single use, shop bound), then HMAC, then the
    token exchange. The exchange never runs when a check fails.
    """
    params = await _request_params(request)
    code, shop, state = params.get("code"), params.get("shop"), params.get("state")

    if not code or not shop or not state:
        logger.warning("Shopify callback missing parameters")
        return dashboard_redirect(shopify_auth="error", error="Missing required OAuth parameters")

    shop = oauth.normalize_shop_domain(shop)
    coordinator = OAuthStateCoordinator(OAuthStateStore(session))

    try:
        record = await coordinator.consume(state, shop=shop, provider="shopify")
        if not record.store_id:
            raise OAuthError("Invalid OAuth state: missing store ID")
        if not oauth.verify_callback(params):
            raise HmacVerificationFailed()

        account_id = record.account_id
        if account_id is None:
            store = await StoreRepository(session).get_by_id(record.store_id)
            account_id = store.account_id if store else None
        if account_id is None:
            raise OAuthError("Invalid OAuth state: missing account ID")

        tokens = await oauth.exchange_code(shop, code)
        integration = await complete_connection(
            session,
            provider="shopify",
            account_id=account_id,
            store_id=record.store_id,
            config={"shop_domain": shop, "scopes": tokens.get("scope")},
            credentials={"access_token": tokens["access_token"], "scope": tokens.get("scope")},
            warehouse_config=record.context.get("warehouse_config"),
        )
    except (OAuthError, ValidationError, KeyError, httpx.HTTPError) as e:
        message = str(e) if isinstance(e, OAuthError) else "OAuth callback failed"
        logger.warning("Shopify callback rejected", shop=shop, error=str(e))
        # Keep the consumed state deleted even though the flow failed
        await session.commit()
        return dashboard_redirect(shopify_auth="error", error=message)

    await session.commit()
    logger.info("Shopify connected", shop=shop, store_id=record.store_id, integration_id=integration.id)
    return dashboard_redirect(
        shopify_auth="success",
        shop=shop,
        store_id=record.store_id,
        integration_id=integration.id,
    )


# ============================================
# UPS
# ============================================

def _clear_ups_cookies(response: RedirectResponse) -> RedirectResponse:
    for name in UPS_COOKIES:
        response.delete_cookie(name)
    return response


@router.get("/ups")
async def ups_authorize(
    session: DbSession,
    oauth: Annotated[UPSOAuth, Depends(get_ups_oauth)],
    account_number: Annotated[str, Query(alias="accountNumber", min_length=1)],
    account_id: Annotated[str, Query(alias="accountId")],
    environment: Annotated[str, Query(pattern="^(sandbox|production)$")] = "production",
    store_id: Annotated[Optional[str], Query(alias="storeId")] = None,
) -> RedirectResponse:
    """Start the UPS connection: issue a state token, set cookies, redirect to UPS."""
    coordinator = OAuthStateCoordinator(OAuthStateStore(session))
    state = await coordinator.issue(
        "ups",
        account_id=account_id,
        store_id=store_id,
        context={"account_number": account_number, "environment": environment},
    )
    await session.commit()

    response = RedirectResponse(
        oauth.build_authorize_url(state, environment),
        status_code=status.HTTP_302_FOUND,
    )
    cookie_options = {
        "max_age": coordinator.ttl_seconds,
        "httponly": True,
        "samesite": "lax",
        "secure": settings.environment == "production",
    }
    response.set_cookie(UPS_STATE_COOKIE, state, **cookie_options)
    response.set_cookie(UPS_ACCOUNT_COOKIE, account_number, **cookie_options)
    response.set_cookie(UPS_ENVIRONMENT_COOKIE, environment, **cookie_options)
    logger.info("Redirecting to UPS authorization", environment=environment, account_id=account_id)
    return response


@router.api_route("/ups/callback", methods=["GET", "POST"], name="ups_callback")
async def ups_callback(
    request: Request,
    session: DbSession,
    oauth: Annotated[UPSOAuth, Depends(get_ups_oauth)],
) -> RedirectResponse:
    """Finish the UPS connection. The three UPS cookies are cleared on every outcome."""
    params = await _request_params(request)
    code, state = params.get("code"), params.get("state")

    if params.get("error"):
        logger.warning("UPS returned an OAuth error", error=params["error"])
        return _clear_ups_cookies(dashboard_redirect(
            ups_error=params["error"],
            ups_error_description=params.get("error_description", ""),
        ))
    if not code:
        return _clear_ups_cookies(dashboard_redirect(ups_error="no_authorization_code"))

    stored_state = request.cookies.get(UPS_STATE_COOKIE)
    account_number = request.cookies.get(UPS_ACCOUNT_COOKIE)
    environment = request.cookies.get(UPS_ENVIRONMENT_COOKIE)
    coordinator = OAuthStateCoordinator(OAuthStateStore(session))

    try:
        if not state or state != stored_state:
            raise OAuthError("Invalid state parameter")
        record = await coordinator.consume(state, provider="ups")
        if not account_number:
            raise OAuthError("Account number not found in cookies")
        if not record.account_id:
            raise OAuthError("Invalid OAuth state: missing account ID")
        environment = environment or record.context.get("environment") or "sandbox"
        environment = "production" if environment == "production" else "sandbox"

        tokens = await oauth.exchange_code(code, environment)
        integration = await complete_connection(
            session,
            provider="ups",
            account_id=record.account_id,
            store_id=record.store_id,
            config={"account_number": account_number, "environment": environment},
            credentials={
                "access_token": tokens["access_token"],
                "refresh_token": tokens.get("refresh_token"),
                "expires_in": tokens.get("expires_in"),
                "token_type": tokens.get("token_type"),
            },
        )
    except (OAuthError, ValidationError, KeyError, httpx.HTTPError) as e:
        message = str(e) if isinstance(e, OAuthError) else "OAuth callback failed"
        logger.warning("UPS callback rejected", error=str(e))
        await session.commit()
        return _clear_ups_cookies(dashboard_redirect(ups_error=message))

    await session.commit()
    logger.info("UPS connected", account_id=record.account_id, integration_id=integration.id, environment=environment)
    return _clear_ups_cookies(dashboard_redirect(
        ups_success="true",
        ups_account=account_number,
        ups_env=environment,
        integration_id=integration.id,
    ))
