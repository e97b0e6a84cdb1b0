# app/core/security.py
"""
Encryption of OAuth tokens at rest.
Tokens are stored as Fernet ciphertext; the key comes from ENCRYPTION_KEY.
"""
import base64
import hashlib
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from app.core.config import ENCRYPTION_KEY
from app.core.exceptions import CredentialsInvalid

log = logging.getLogger("bulkmail.security")


def _build_fernet(key: str) -> Fernet:
    """
    Accept either a ready Fernet key or an arbitrary passphrase.
    Passphrases are stretched to 32 bytes with SHA-256.
    """
    try:
        return Fernet(key.encode() if isinstance(key, str) else key)
    except (ValueError, TypeError):
        digest = hashlib.sha256(key.encode("utf-8")).digest()
        return Fernet(base64.urlsafe_b64encode(digest))


class TokenCipher:
    """Encrypt/decrypt OAuth tokens"""

    def __init__(self, key: Optional[str] = None):
        self._fernet = _build_fernet(key or ENCRYPTION_KEY)

    def encrypt(self, token: str) -> str:
        if token is None:
            raise ValueError("Cannot encrypt an empty token")
        return self._fernet.encrypt(token.encode("utf-8")).decode("utf-8")

    def decrypt(self, encrypted: str) -> str:
        try:
            return self._fernet.decrypt(encrypted.encode("utf-8")).decode("utf-8")
        except (InvalidToken, AttributeError) as e:
            log.error(f"❌ Token decryption failed: {type(e).__name__}")
            raise CredentialsInvalid(
                "Invalid stored credentials. Please re-authenticate with Gmail."
            ) from e


_cipher: Optional[TokenCipher] = None


def get_token_cipher() -> TokenCipher:
    """Get process-wide cipher instance"""
    global _cipher
    if _cipher is None:
        _cipher = TokenCipher()
    return _cipher
