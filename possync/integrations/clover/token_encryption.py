"""
Clover token encryption at rest (Fernet).
When clover_token_encryption_key is set, tokens written to clover_tokens are encrypted
so a database compromise does not expose plaintext credentials.
"""

import structlog
from cryptography.fernet import Fernet, InvalidToken

from possync.config import settings

logger = structlog.get_logger()

# Fernet tokens are urlsafe base64 of a blob starting with version byte 0x80
FERNET_PREFIX = "gAAAAA"


def _get_fernet() -> Fernet | None:
    """Return Fernet instance if encryption key is configured; else None."""
    key = (settings.clover_token_encryption_key or "").strip()
    if not key:
        return None
    if len(key) != 44:  # Fernet key is 44 bytes base64
        logger.warning(
            "clover_token_encryption_key must be a 44-char Fernet key; encryption disabled",
            key_len=len(key),
        )
        return None
    try:
        return Fernet(key.encode("utf-8"))
    except ValueError as e:
        logger.warning("Invalid clover_token_encryption_key; encryption disabled", error=str(e))
        return None


def encrypt_token(value: str | None) -> str | None:
    """Encrypt a token for storage. Returns the value unchanged when encryption is not configured."""
    if not value:
        return value
    fernet = _get_fernet()
    if not fernet:
        return value
    return fernet.encrypt(value.encode("utf-8")).decode("ascii")


def decrypt_token(value: str | None) -> str | None:
    """
    Decrypt a stored token.
    Plaintext values (not Fernet-shaped) pass through unchanged.
    Raises ValueError for ciphertext that cannot be decrypted.
    """
    if not value or not value.startswith(FERNET_PREFIX):
        return value
    fernet = _get_fernet()
    if not fernet:
        raise ValueError("Clover token is encrypted but no clover_token_encryption_key is configured")
    try:
        return fernet.decrypt(value.encode("ascii")).decode("utf-8")
    except InvalidToken as e:
        raise ValueError("Clover token could not be decrypted with the configured key") from e
