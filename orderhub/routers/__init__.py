"""
API routers package.
"""
from orderhub.routers.auth import router as auth_router
from orderhub.routers.gdpr import router as gdpr_router
from orderhub.routers.health import router as health_router
from orderhub.routers.integrations import router as integrations_router
from orderhub.routers.shipping import router as shipping_router
from orderhub.routers.stores import router as stores_router

__all__ = [
    "auth_router",
    "gdpr_router",
    "health_router",
    "integrations_router",
    "shipping_router",
    "stores_router",
]
