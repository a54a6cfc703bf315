"""Organization API keys for the PromptDesk API.

Callers present a key in the ``X-API-Key`` header. Each organization holds
SHA-256 hashes of its keys; the plaintext is shown once when a key is
issued and never stored.
"""

import hashlib
import hmac
import secrets
from typing import Iterable, Optional, Tuple

KEY_PREFIX = "pd-"


class AuthenticationError(Exception):
    """Raised when API key validation fails."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


def hash_api_key(raw_key: str) -> str:
    """Compute the SHA-256 hash of a raw API key.

    Catalog files hold this value in ``organizations[].keys[].key_hash``::

        python -c "from promptdesk.auth import hash_api_key; print(hash_api_key('pd-...'))"
    """
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key() -> Tuple[str, str]:
    """Mint a new random organization key.

    Returns:
        ``(raw_key, key_hash)``. Only the hash should be persisted.
    """
    raw_key = KEY_PREFIX + secrets.token_urlsafe(24)
    return raw_key, hash_api_key(raw_key)


def validate_api_key(
    header_value: Optional[str],
    key_hashes: Iterable[Tuple[str, str]],
) -> str:
    """Resolve the organization owning the presented key.

    Args:
        header_value: The value from the X-API-Key header (may be None).
        key_hashes: ``(organization_id, key_hash)`` pairs to match against.

    Returns:
        The organization id (tenant) the key belongs to.

    Raises:
        AuthenticationError: If the key is missing or matches no organization.
    """
    if not header_value:
        raise AuthenticationError("Missing API key. Provide X-API-Key header.")

    presented = hash_api_key(header_value)
    for tenant, stored in key_hashes:
        if hmac.compare_digest(presented, stored):
            return tenant

    raise AuthenticationError("Invalid API key.")
