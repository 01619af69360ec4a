"""
Domain exceptions.

Operational failures inside adapters and coordinators are reported through
result objects; these exceptions mark the hard failures that abort a flow.
"""
from typing import Optional


class OrderHubError(Exception):
    """Base class for all domain errors."""


class CredentialsMissing(OrderHubError):
    """No credentials stored for an (account, integration) pair."""

    def __init__(self, account_id: str, integration_id: str) -> None:
        self.account_id = account_id
        self.integration_id = integration_id
        super().__init__(
            f"No credentials stored for integration {integration_id} (account {account_id})"
        )


class OAuthError(OrderHubError):
    """Integrity or exchange failure during an OAuth flow."""


class InvalidState(OAuthError):
    """State token was never issued, has expired, or was already consumed."""

    def __init__(self, message: str = "Invalid or expired state parameter") -> None:
        super().__init__(message)


class ShopMismatch(OAuthError):
    """Callback shop differs from the shop the state token was issued for."""

    def __init__(self, expected: Optional[str], received: Optional[str]) -> None:
        self.expected = expected
        self.received = received
        super().__init__("Shop mismatch in OAuth flow")


class HmacVerificationFailed(OAuthError):
    """Signed callback or webhook payload failed HMAC verification."""

    def __init__(self, message: str = "HMAC verification failed") -> None:
        super().__init__(message)


class TokenExchangeFailed(OAuthError):
    """Platform token endpoint answered with a non-2xx status or no access token."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Token exchange failed ({status_code}): {body}")


class UnsupportedOperation(OrderHubError):
    """An adapter was asked for an operation outside its capability set."""


class MergeFailure(OrderHubError):
    """A batch upsert could not be committed; nothing from the batch was kept."""


class SyncInProgress(OrderHubError):
    """Another sync for the same (store, integration) is still running."""

    def __init__(self, store_id: str, integration_id: str) -> None:
        self.store_id = store_id
        self.integration_id = integration_id
        super().__init__(f"Sync already running for store {store_id} / integration {integration_id}")


class IntegrationAPIError(OrderHubError):
    """Transport or API error raised by a carrier/platform adapter."""

    def __init__(self, message: "str | list", status_code: Optional[int] = None) -> None:
        if isinstance(message, list):
            message = "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in message)
        self.status_code = status_code
        super().__init__(message)


class IntegrationNotFound(OrderHubError):
    """No integration with the given id (or provider for a store)."""

    def __init__(self, reference: str) -> None:
        self.reference = reference
        super().__init__(f"Integration not found: {reference}")
