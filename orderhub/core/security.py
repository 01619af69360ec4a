"""
Security utilities: secret encryption, OAuth state tokens, HMAC verification.
"""
import base64
import hashlib
import hmac as hmac_lib
import json
import secrets
from collections.abc import Mapping
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken

from orderhub.core.config import settings
from orderhub.core.logging import get_logger

logger = get_logger(__name__)


def derive_fernet_key(secret: str) -> bytes:
    """Derive a Fernet-compatible key from the encryption key."""
    key = hashlib.sha256(secret.encode()).digest()
    return base64.urlsafe_b64encode(key)


# Token encryption
_fernet = Fernet(derive_fernet_key(settings.encryption_key))


def encrypt_token(token: str) -> str:
    """Encrypt a token for secure storage."""
    return _fernet.encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str) -> str:
    """Decrypt a stored token."""
    try:
        return _fernet.decrypt(encrypted_token.encode()).decode()
    except InvalidToken as e:
        logger.error("Failed to decrypt token", error=str(e))
        raise ValueError("Invalid encrypted token")


def encrypt_payload(payload: dict[str, Any]) -> str:
    """Encrypt a JSON-serializable credentials document."""
    return encrypt_token(json.dumps(payload, sort_keys=True))


def decrypt_payload(encrypted_payload: str) -> dict[str, Any]:
    """Decrypt a credentials document produced by encrypt_payload."""
    return json.loads(decrypt_token(encrypted_payload))


def generate_state_token() -> str:
    """Generate a random OAuth state token (CSRF protection)."""
    return secrets.token_hex(32)


def canonicalize_query(params: Mapping[str, str]) -> str:
    """
    Build the message Shopify signs on OAuth redirects.

    Parameters are sorted alphabetically and joined as key=value pairs;
    the signature parameters themselves are excluded.
    """
    pairs = sorted(
        (key, value)
        for key, value in params.items()
        if key not in ("hmac", "signature")
    )
    return "&".join(f"{key}={value}" for key, value in pairs)


def verify_oauth_hmac(params: Mapping[str, str], secret: Optional[str]) -> bool:
    """Verify the hex HMAC-SHA256 signature of an OAuth callback query."""
    received = params.get("hmac")
    if not received or not secret:
        return False

    computed = hmac_lib.new(
        secret.encode(),
        canonicalize_query(params).encode(),
        hashlib.sha256,
    ).hexdigest()
    return hmac_lib.compare_digest(computed, received)


def verify_webhook_hmac(body: bytes, hmac_header: Optional[str], secret: Optional[str]) -> bool:
    """Verify a base64 HMAC-SHA256 webhook signature over the raw body."""
    if not secret:
        logger.warning("Webhook secret not configured, HMAC verification failed closed")
        return False
    if not hmac_header:
        return False

    computed_hmac = base64.b64encode(
        hmac_lib.new(
            secret.encode(),
            body,
            hashlib.sha256,
        ).digest()
    ).decode()
    return hmac_lib.compare_digest(computed_hmac, hmac_header)
