"""
Integration management and sync API routes.
"""
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from orderhub.core.database import DbSession
from orderhub.core.exceptions import IntegrationNotFound, OrderHubError
from orderhub.core.logging import get_logger
from orderhub.integrations.registry import IntegrationFactory
from orderhub.middleware.error_handler import status_for
from orderhub.repositories.integration import IntegrationRepository
from orderhub.repositories.store import StoreRepository
from orderhub.schemas.integration import (
    IntegrationDeleteResponse,
    IntegrationResponse,
    IntegrationUpdate,
    TestConnectionResponse,
)
from orderhub.schemas.sync import SyncRequest, SyncResponse
from orderhub.services.integration_service import IntegrationService
from orderhub.services.oauth import ShopifyOAuth
from orderhub.services.sync import SYNC_TYPES, SyncOrchestrator

logger = get_logger(__name__)

router = APIRouter(prefix="/integrations", tags=["integrations"])


def get_integration_factory() -> IntegrationFactory:
    """Dependency to get the adapter factory."""
    return IntegrationFactory()


async def get_integration_service(
    session: DbSession,
    factory: Annotated[IntegrationFactory, Depends(get_integration_factory)],
) -> IntegrationService:
    """Dependency to get the integration service."""
    return IntegrationService(session, factory)


def _http_error(exc: OrderHubError) -> HTTPException:
    return HTTPException(status_code=status_for(exc), detail=str(exc))


@router.get("", response_model=list[IntegrationResponse])
async def list_integrations(
    session: DbSession,
    account_id: Annotated[str, Query(alias="accountId")],
) -> list[IntegrationResponse]:
    """All integrations of an account."""
    integrations = await IntegrationRepository(session).list_for_account(account_id)
    return [IntegrationResponse.model_validate(i) for i in integrations]


@router.post("/{provider}/sync", response_model=SyncResponse)
async def sync_integration(
    provider: str,
    body: SyncRequest,
    session: DbSession,
    factory: Annotated[IntegrationFactory, Depends(get_integration_factory)],
) -> SyncResponse:
    """
    Pull orders and/or products from a connected platform.

    Incremental by default: only records changed since the last complete
    sync are fetched unless `forceFullSync` is set.
    """
    if body.sync_type not in SYNC_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid syncType: {body.sync_type}. Expected one of {', '.join(SYNC_TYPES)}",
        )

    store_id = body.store_id
    if store_id is None:
        store = await StoreRepository(session).get_by_domain(ShopifyOAuth.normalize_shop_domain(body.shop))
        if store is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Store not found: {body.shop}")
        store_id = store.id

    integration = await IntegrationRepository(session).get_for_store(store_id, provider)
    if integration is None or (body.account_id and integration.account_id != body.account_id):
        raise _http_error(IntegrationNotFound(f"{provider} for store {store_id}"))

    # A token passed with the request is used for this run only
    override = {"access_token": body.access_token} if body.access_token else None

    orchestrator = SyncOrchestrator(session, factory=factory)
    try:
        outcome = await orchestrator.run(
            integration.id,
            store_id,
            body.sync_type,
            force_full_sync=body.force_full_sync,
            warehouse_id=body.warehouse_id,
            credentials_override=override,
        )
    except OrderHubError as e:
        logger.warning("Sync rejected", provider=provider, store_id=store_id, error=str(e))
        raise _http_error(e) from e

    return SyncResponse(
        success=outcome.success,
        order_count=outcome.order_count,
        product_count=outcome.product_count,
        is_incremental=outcome.is_incremental,
        partial=outcome.partial,
        message=outcome.message,
        error=outcome.errors[0] if outcome.errors else None,
        errors=outcome.errors,
    )


@router.get("/{integration_id}", response_model=IntegrationResponse)
async def get_integration(
    integration_id: str,
    service: Annotated[IntegrationService, Depends(get_integration_service)],
) -> IntegrationResponse:
    try:
        integration = await service.get(integration_id)
    except IntegrationNotFound as e:
        raise _http_error(e) from e
    return IntegrationResponse.model_validate(integration)


@router.patch("/{integration_id}", response_model=IntegrationResponse)
async def update_integration(
    integration_id: str,
    update: IntegrationUpdate,
    service: Annotated[IntegrationService, Depends(get_integration_service)],
) -> IntegrationResponse:
    """Partial update; `config` is deep-merged into the stored config."""
    try:
        integration = await service.update(integration_id, update.model_dump(exclude_unset=True))
    except OrderHubError as e:
        raise _http_error(e) from e
    return IntegrationResponse.model_validate(integration)


@router.post("/{integration_id}/disconnect", response_model=IntegrationResponse)
async def disconnect_integration(
    integration_id: str,
    service: Annotated[IntegrationService, Depends(get_integration_service)],
) -> IntegrationResponse:
    try:
        integration = await service.disconnect(integration_id)
    except IntegrationNotFound as e:
        raise _http_error(e) from e
    return IntegrationResponse.model_validate(integration)


@router.delete("/{integration_id}", response_model=IntegrationDeleteResponse)
async def delete_integration(
    integration_id: str,
    service: Annotated[IntegrationService, Depends(get_integration_service)],
    cascade: bool = False,
) -> IntegrationDeleteResponse:
    """Delete an integration; with `cascade` its synced orders and products go too."""
    try:
        result = await service.delete(integration_id, cascade=cascade)
    except IntegrationNotFound as e:
        raise _http_error(e) from e
    return IntegrationDeleteResponse(**result)


@router.post("/{integration_id}/test", response_model=TestConnectionResponse)
async def test_integration(
    integration_id: str,
    service: Annotated[IntegrationService, Depends(get_integration_service)],
) -> TestConnectionResponse:
    try:
        result = await service.test(integration_id)
    except IntegrationNotFound as e:
        raise _http_error(e) from e
    return TestConnectionResponse.model_validate(result.model_dump())


@router.get("/{integration_id}/features", response_model=list[str])
async def integration_features(
    integration_id: str,
    service: Annotated[IntegrationService, Depends(get_integration_service)],
    factory: Annotated[IntegrationFactory, Depends(get_integration_factory)],
    feature: Optional[str] = None,
) -> list[str]:
    """Capability list of the integration's adapter, optionally filtered to one feature."""
    try:
        integration = await service.get(integration_id)
    except IntegrationNotFound as e:
        raise _http_error(e) from e
    adapter = factory.create(integration.to_dict())
    if adapter is None:
        return []
    features = adapter.get_supported_features()
    if feature is not None:
        return [feature] if adapter.supports_feature(feature) else []
    return features
