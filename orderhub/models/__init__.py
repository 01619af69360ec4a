"""
SQLAlchemy models package.
All models are imported here so every table is registered on Base.metadata.
"""
from orderhub.models.credential import Credential
from orderhub.models.integration import Integration, IntegrationStatus, IntegrationType
from orderhub.models.oauth_state import OAuthState
from orderhub.models.order import Order
from orderhub.models.product import Product
from orderhub.models.shipping_box import ShippingBox
from orderhub.models.store import Store, Warehouse
from orderhub.models.sync_watermark import SyncWatermark

__all__ = [
    "Credential",
    "Integration",
    "IntegrationStatus",
    "IntegrationType",
    "OAuthState",
    "Order",
    "Product",
    "ShippingBox",
    "Store",
    "Warehouse",
    "SyncWatermark",
]
