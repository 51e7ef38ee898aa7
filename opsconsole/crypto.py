"""
Field-level encryption for partner and push secrets.

Encrypted columns: PushConfig.server_key, PushConfig.service_account,
ApiPartnerConfig.secret_key. Fernet (the `cryptography` package) with the
key from ENCRYPTION_KEY.

Without a key (development only) values pass through unchanged.
"""

import logging
from cryptography.fernet import Fernet, InvalidToken
from opsconsole.config import get_settings

logger = logging.getLogger(__name__)

_fernet: Fernet | None = None
_warned_plaintext = False


def _cipher() -> Fernet | None:
    global _fernet, _warned_plaintext
    if _fernet is not None:
        return _fernet

    settings = get_settings()
    if not settings.encryption_key:
        if settings.is_production:
            raise RuntimeError("ENCRYPTION_KEY must be set in production.")
        if not _warned_plaintext:
            logger.warning("ENCRYPTION_KEY not set: push/partner secrets are stored in plaintext.")
            _warned_plaintext = True
        return None

    try:
        _fernet = Fernet(settings.encryption_key.encode())
    except ValueError as exc:
        raise RuntimeError(f"Invalid ENCRYPTION_KEY: {exc}") from exc
    return _fernet


def reset_cipher() -> None:
    """Forget the cached key (after settings change)."""
    global _fernet
    _fernet = None


def encrypt_value(plaintext: str | None) -> str | None:
    if not plaintext:
        return plaintext
    f = _cipher()
    if f is None:
        return plaintext
    return f.encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: str | None) -> str | None:
    if not ciphertext:
        return ciphertext
    f = _cipher()
    if f is None:
        return ciphertext
    try:
        return f.decrypt(ciphertext.encode()).decode()
    except InvalidToken:
        # Rows written before a key was configured
        logger.warning("Stored secret is not Fernet ciphertext, returning as-is.")
        return ciphertext
