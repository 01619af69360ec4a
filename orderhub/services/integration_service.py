"""
Integration lifecycle - disconnect, delete, update and connection tests.
"""
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.exceptions import IntegrationNotFound, UnsupportedOperation
from orderhub.core.logging import get_logger
from orderhub.core.timeutils import utcnow
from orderhub.integrations.base import TestConnectionResult, config_model_for
from orderhub.integrations.registry import IntegrationFactory
from orderhub.models.integration import Integration, IntegrationStatus
from orderhub.models.order import Order
from orderhub.models.product import Product
from orderhub.repositories.credential_vault import CredentialVault
from orderhub.repositories.integration import IntegrationRepository
from orderhub.repositories.watermark import WatermarkRepository

logger = get_logger(__name__)

SENSITIVE_CONFIG_MARKERS = ("token", "secret", "password", "api_key", "consumer_key")

UPDATABLE_FIELDS = ("name", "enabled", "status", "store_id", "features")


def deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge `patch` into a copy of `base`; nested dicts merge, everything else replaces."""
    merged = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def strip_sensitive(config: dict[str, Any]) -> dict[str, Any]:
    return {
        key: value
        for key, value in config.items()
        if not any(marker in key.lower() for marker in SENSITIVE_CONFIG_MARKERS)
    }


class IntegrationService:
    """Operations on a single persisted integration."""

    def __init__(self, session: AsyncSession, factory: Optional[IntegrationFactory] = None) -> None:
        self.session = session
        self.factory = factory or IntegrationFactory()
        self.repo = IntegrationRepository(session)
        self.vault = CredentialVault(session)

    async def get(self, integration_id: str) -> Integration:
        integration = await self.repo.get_by_id(integration_id)
        if integration is None:
            raise IntegrationNotFound(integration_id)
        return integration

    async def disconnect(self, integration_id: str) -> Integration:
        integration = await self.get(integration_id)
        integration = await self.repo.update(integration, {
            "status": IntegrationStatus.DISCONNECTED,
            "enabled": False,
            "config": strip_sensitive(integration.config or {}),
        })
        await self.vault.clear(integration.account_id, integration.id)
        logger.info("Integration disconnected", integration_id=integration.id, provider=integration.provider)
        return integration

    async def delete(self, integration_id: str, cascade: bool = False) -> dict[str, Any]:
        """
        Remove the integration, its credentials and watermarks.

        With `cascade`, orders and products it synced are removed too.
        """
        integration = await self.get(integration_id)
        orders_deleted = products_deleted = 0

        if cascade:
            for model in (Order, Product):
                count = await self.session.scalar(
                    select(func.count()).select_from(model).where(model.integration_id == integration.id)
                )
                await self.session.execute(delete(model).where(model.integration_id == integration.id))
                if model is Order:
                    orders_deleted = count or 0
                else:
                    products_deleted = count or 0

        await self.vault.clear(integration.account_id, integration.id)
        await WatermarkRepository(self.session).clear(integration.id)
        await self.repo.delete(integration)

        logger.info(
            "Integration deleted",
            integration_id=integration_id,
            cascade=cascade,
            orders_deleted=orders_deleted,
            products_deleted=products_deleted,
        )
        return {
            "id": integration_id,
            "deleted": True,
            "orders_deleted": orders_deleted,
            "products_deleted": products_deleted,
        }

    async def update(self, integration_id: str, patch: dict[str, Any]) -> Integration:
        """
        Top-level fields replace; `config` is deep-merged and re-validated
        against the provider's config model.
        """
        integration = await self.get(integration_id)
        changes = {key: patch[key] for key in UPDATABLE_FIELDS if patch.get(key) is not None}

        if patch.get("config"):
            merged = deep_merge(integration.config or {}, patch["config"])
            merged["provider"] = integration.provider
            try:
                config_model_for(integration.provider).model_validate(merged)
            except (ValidationError, ValueError) as e:
                raise UnsupportedOperation(f"Invalid {integration.provider} config: {e}") from e
            changes["config"] = merged

        integration = await self.repo.update(integration, changes)
        logger.info("Integration updated", integration_id=integration.id, fields=sorted(changes))
        return integration

    async def test(self, integration_id: str) -> TestConnectionResult:
        integration = await self.get(integration_id)
        credentials = await self.vault.get(integration.account_id, integration.id)

        adapter = self.factory.create(integration.to_dict(), credentials)
        if adapter is None:
            return TestConnectionResult(success=False, error=f"Integration {integration.provider} is not supported")

        before = dict(adapter.credentials)
        result = await adapter.test_connection()

        # Some adapters refresh their tokens while testing
        if result.success and adapter.credentials and adapter.credentials != before:
            await self.vault.set(integration.account_id, integration.id, adapter.credentials)

        if result.success:
            integration.status = IntegrationStatus.CONNECTED
            integration.last_error = None
        else:
            integration.status = IntegrationStatus.ERROR
            integration.last_error = result.error or result.message
        integration.updated_at = utcnow()
        await self.session.flush()

        logger.info(
            "Connection tested",
            integration_id=integration.id,
            provider=integration.provider,
            success=result.success,
        )
        return result
