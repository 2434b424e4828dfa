"""
Encryption at rest for Intercom access tokens and message bodies.

AES-256-GCM with a per-value key derived from the master key via scrypt.
Stored format: base64(salt):base64(nonce):base64(ciphertext+tag)
"""

from __future__ import annotations

import base64
import binascii
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from snoozeplus.core.config import settings
from snoozeplus.core.errors import DecryptionError

SALT_LENGTH = 32
NONCE_LENGTH = 12  # NIST recommended 96-bit nonce
KEY_LENGTH = 32
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1


class CryptoService:
    """
    Encrypts and decrypts short strings with a hex-encoded 32 byte master key.
    """

    def __init__(self, master_key_hex: str) -> None:
        if not master_key_hex:
            raise ValueError("ENCRYPTION_KEY is required.")

        try:
            self._master_key = bytes.fromhex(master_key_hex)
        except ValueError:
            raise ValueError("ENCRYPTION_KEY must be a valid hex string.") from None

        if len(self._master_key) != KEY_LENGTH:
            raise ValueError("ENCRYPTION_KEY must be 32 bytes (64 hex chars).")

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = Scrypt(salt=salt, length=KEY_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
        return kdf.derive(self._master_key)

    def encrypt(self, plaintext: str) -> str:
        salt = os.urandom(SALT_LENGTH)
        nonce = os.urandom(NONCE_LENGTH)
        ciphertext = AESGCM(self._derive_key(salt)).encrypt(nonce, plaintext.encode("utf-8"), None)
        return ":".join(base64.b64encode(part).decode("ascii") for part in (salt, nonce, ciphertext))

    def decrypt(self, token: str) -> str:
        """
        Raises:
            DecryptionError: malformed token, tampered ciphertext or wrong key
        """
        parts = token.split(":") if token else []
        if len(parts) != 3:
            raise DecryptionError("Encrypted value must have 3 segments (salt:nonce:ciphertext)")

        try:
            salt, nonce, ciphertext = (base64.b64decode(part, validate=True) for part in parts)
        except binascii.Error as e:
            raise DecryptionError(f"Encrypted value is not valid base64: {e}") from e

        if len(salt) != SALT_LENGTH or len(nonce) != NONCE_LENGTH:
            raise DecryptionError("Encrypted value has an invalid salt or nonce length")

        try:
            plaintext = AESGCM(self._derive_key(salt)).decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise DecryptionError("Authentication failed; value was tampered with or uses another key") from e

        return plaintext.decode("utf-8")


_service: Optional[CryptoService] = None


def get_crypto_service() -> CryptoService:
    """Singleton accessor."""
    global _service
    if _service is None:
        _service = CryptoService(settings.ENCRYPTION_KEY)
    return _service
