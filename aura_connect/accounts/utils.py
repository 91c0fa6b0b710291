# aura_connect/accounts/utils.py
from typing import Any, Dict, Optional

import structlog
from cryptography.fernet import Fernet, InvalidToken
from jose import jwt, JWTError

logger = structlog.get_logger(__name__)


# --- bearer tokens from the auth provider ---
def decode_token(token: str, secret: str, algorithm: str = "HS256") -> Dict[str, Any]:
    try:
        return jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as e:
        logger.warning("token_decode_failed", error=str(e))
        raise


# --- OAuth token encryption ---
class TokenCipher:
    """Fernet wrapper for provider tokens at rest."""

    def __init__(self, key: Optional[str] = None):
        if not key:
            # dev fallback (not for production)
            key = Fernet.generate_key().decode()
            logger.warning("token_encryption_key_generated")
        self.fernet = Fernet(key.encode())

    def encrypt(self, plaintext: Optional[str]) -> Optional[str]:
        if plaintext is None:
            return None
        return self.fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: Optional[str]) -> Optional[str]:
        if not ciphertext:
            return None
        try:
            return self.fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            logger.warning("token_decrypt_failed")
            return None
