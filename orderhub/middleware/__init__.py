"""
Middleware package.
"""
from orderhub.middleware.error_handler import ErrorHandlerMiddleware
from orderhub.middleware.request_id import RequestIdMiddleware

__all__ = [
    "ErrorHandlerMiddleware",
    "RequestIdMiddleware",
]
