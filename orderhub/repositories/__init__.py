"""
Repository package for data access layer.
"""
from orderhub.repositories.base import BaseRepository
from orderhub.repositories.credential_vault import CredentialVault
from orderhub.repositories.entity_store import EntityStore, UpsertResult
from orderhub.repositories.integration import IntegrationRepository
from orderhub.repositories.oauth_state import OAuthStateStore
from orderhub.repositories.store import StoreRepository, WarehouseRepository
from orderhub.repositories.watermark import WatermarkRepository

__all__ = [
    "BaseRepository",
    "CredentialVault",
    "EntityStore",
    "UpsertResult",
    "IntegrationRepository",
    "OAuthStateStore",
    "StoreRepository",
    "WarehouseRepository",
    "WatermarkRepository",
]
