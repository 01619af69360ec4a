"""
Carrier packaging sync API routes.
"""
from typing import Annotated, Any

from fastapi import APIRouter, Depends

from orderhub.core.database import DbSession
from orderhub.core.exceptions import IntegrationAPIError, MergeFailure
from orderhub.core.logging import get_logger
from orderhub.integrations.base import ShippingIntegration
from orderhub.integrations.registry import IntegrationFactory
from orderhub.repositories.credential_vault import CredentialVault
from orderhub.repositories.entity_store import EntityStore
from orderhub.repositories.integration import IntegrationRepository
from orderhub.routers.integrations import get_integration_factory
from orderhub.schemas.shipping import BoxSyncRequest, BoxSyncResponse
from orderhub.services.merge import box_merger

logger = get_logger(__name__)

router = APIRouter(prefix="/shipping", tags=["shipping"])


@router.post("/boxes/sync", response_model=BoxSyncResponse)
async def sync_boxes(
    body: BoxSyncRequest,
    session: DbSession,
    factory: Annotated[IntegrationFactory, Depends(get_integration_factory)],
) -> BoxSyncResponse:
    """
    Load the carriers' packaging catalogs into a warehouse's boxes.

    Boxes the user customized are left alone; carrier boxes dropped from a
    synced catalog are removed.
    """
    integrations = IntegrationRepository(session)
    vault = CredentialVault(session)
    boxes: list[dict[str, Any]] = []
    errors: list[str] = []

    for carrier in body.carriers:
        provider = carrier.lower()
        integration = await integrations.get_for_account(body.account_id, provider)
        if integration is not None:
            data = integration.to_dict()
            credentials = await vault.get(integration.account_id, integration.id)
        else:
            # Catalogs are public; an unconnected carrier still has one
            data = {
                "id": f"{provider}-catalog",
                "name": carrier.upper(),
                "type": "shipping",
                "provider": provider,
                "account_id": body.account_id,
                "config": {},
            }
            credentials = None

        adapter = factory.create(data, credentials)
        if not isinstance(adapter, ShippingIntegration):
            errors.append(f"Unsupported carrier: {carrier}")
            continue
        try:
            boxes.extend(await adapter.list_boxes())
        except IntegrationAPIError as e:
            errors.append(f"{carrier}: {e}")

    if not boxes:
        return BoxSyncResponse(
            success=False,
            count=0,
            message="No carrier boxes to sync",
            errors=errors,
            error=errors[0] if errors else None,
        )

    try:
        report = await box_merger().merge(
            EntityStore(session),
            boxes,
            scope={"warehouse_id": body.warehouse_id},
        )
    except MergeFailure as e:
        logger.error("Box sync failed", warehouse_id=body.warehouse_id, error=str(e))
        return BoxSyncResponse(success=False, count=0, message="Box sync failed", error=str(e), errors=errors)

    logger.info(
        "Carrier boxes synced",
        warehouse_id=body.warehouse_id,
        carriers=body.carriers,
        created=report.created,
        updated=report.updated,
        preserved=report.preserved,
        deleted=report.deleted,
    )
    return BoxSyncResponse(
        success=True,
        count=report.total,
        created=report.created,
        updated=report.updated,
        preserved=report.preserved,
        deleted=report.deleted,
        message=f"Synced {report.total} boxes",
        errors=errors,
        boxes=report.records,
    )
