"""
nORM - Credential Encryption
Fernet encryption for social tokens and WordPress application passwords at rest
"""
import logging

from cryptography.fernet import Fernet, InvalidToken
from flask import current_app

from norm.errors import AppError

logger = logging.getLogger(__name__)


class EncryptionError(AppError):
    """Raised when a credential cannot be encrypted or decrypted"""
    status_code = 500
    default_code = 'ENCRYPTION_ERROR'


def _get_fernet() -> Fernet:
    key = current_app.config.get('ENCRYPTION_KEY')
    if not key:
        raise EncryptionError(
            "ENCRYPTION_KEY not configured. "
            "Generate with: python -c 'from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())'"
        )
    if isinstance(key, str):
        key = key.encode('utf-8')
    try:
        return Fernet(key)
    except ValueError as e:
        raise EncryptionError(f"ENCRYPTION_KEY is invalid: {e}")


def encrypt_string(plaintext: str) -> str:
    """Encrypt a string and return the Fernet token as text"""
    if not plaintext:
        return ""
    return _get_fernet().encrypt(plaintext.encode('utf-8')).decode('utf-8')


def decrypt_string(ciphertext: str) -> str:
    """Decrypt a Fernet token produced by encrypt_string"""
    if not ciphertext:
        return ""
    try:
        return _get_fernet().decrypt(ciphertext.encode('utf-8')).decode('utf-8')
    except InvalidToken:
        logger.error("Stored credential could not be decrypted with the current ENCRYPTION_KEY")
        raise EncryptionError("Decryption failed: invalid token or wrong key")
