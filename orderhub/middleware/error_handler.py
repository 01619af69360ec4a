"""
Global error handling middleware.

Uses pure ASGI middleware (not BaseHTTPMiddleware) to avoid breaking
async generator dependencies like get_db_session().
"""
import json

from fastapi import HTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from orderhub.core.exceptions import (
    CredentialsMissing,
    IntegrationNotFound,
    MergeFailure,
    OAuthError,
    OrderHubError,
    SyncInProgress,
    UnsupportedOperation,
)
from orderhub.core.logging import get_logger

logger = get_logger(__name__)

# Domain errors that escape a router map to these statuses
DOMAIN_ERROR_STATUS: dict[type[OrderHubError], int] = {
    OAuthError: 400,
    UnsupportedOperation: 400,
    IntegrationNotFound: 404,
    SyncInProgress: 409,
    CredentialsMissing: 422,
    MergeFailure: 500,
}


def status_for(exc: Exception) -> int:
    """HTTP status for an exception that reached the middleware."""
    for error_type, status_code in DOMAIN_ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


class ErrorHandlerMiddleware:
    """
    Pure ASGI error handler that turns unhandled exceptions into JSON
    responses.

    Domain errors carry their own status and message; anything else is an
    opaque 500. HTTPException passes through to FastAPI's handler.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except HTTPException:
            raise
        except Exception as e:
            path = scope.get("path", "unknown")
            if response_started:
                # Headers already sent, can't change the response
                logger.exception("Unhandled exception after response started", error=str(e), path=path)
                raise

            status_code = status_for(e)
            if isinstance(e, OrderHubError):
                logger.warning("Domain error", error=str(e), type=type(e).__name__, path=path)
                detail = str(e)
            else:
                logger.exception("Unhandled exception", error=str(e), path=path)
                detail = "Internal server error"

            body = json.dumps({
                "detail": detail,
                "type": type(e).__name__,
            }).encode("utf-8")

            await send({
                "type": "http.response.start",
                "status": status_code,
                "headers": [
                    [b"content-type", b"application/json"],
                    [b"content-length", str(len(body)).encode()],
                ],
            })
            await send({
                "type": "http.response.body",
                "body": body,
            })
