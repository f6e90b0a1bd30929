"""
Exchange Engine - Secret Codec.

============================================================
PURPOSE
============================================================
Authenticated symmetric encryption of credential fields at rest.
No network or persistence logic.

============================================================
FORMAT
============================================================
base64( version | key_id | nonce | ciphertext+tag )

- version:  1 byte
- key_id:   4 bytes, fingerprint of the derived key
- nonce:    12 bytes, random per encryption
- body:     AES-256-GCM output; version and key_id are bound
            as associated data

The key_id lets decryption tell a wrong key apart from a
tampered ciphertext:

    not base64 / too short / bad version -> MalformedCiphertextError
    key_id mismatch                      -> WrongKeyError
    GCM tag mismatch                     -> IntegrityCheckError

============================================================
"""

import base64
import binascii
import hashlib
import logging
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from exchange_engine.errors import (
    InternalError,
    IntegrityCheckError,
    MalformedCiphertextError,
    WrongKeyError,
)


logger = logging.getLogger(__name__)


FORMAT_VERSION = 1
KEY_ID_SIZE = 4
NONCE_SIZE = 12
TAG_SIZE = 16
HEADER_SIZE = 1 + KEY_ID_SIZE

HKDF_INFO = b"exchange-credentials/v1"


class SecretCodec:
    """
    AES-256-GCM codec keyed from one process-wide master key.

    The master key may be any non-empty string; the actual cipher
    key is derived from it with HKDF-SHA256.
    """

    def __init__(self, encryption_key: str):
        if not encryption_key:
            raise InternalError(
                message="Encryption key is not configured",
                code="ENCRYPTION_KEY_MISSING",
                operation="secret_codec",
            )

        derived = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=None,
            info=HKDF_INFO,
        ).derive(encryption_key.encode("utf-8"))

        self._aead = AESGCM(derived)
        self._key_id = hashlib.sha256(b"key-id:" + derived).digest()[:KEY_ID_SIZE]
        self._header = bytes([FORMAT_VERSION]) + self._key_id

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_SIZE)
        body = self._aead.encrypt(nonce, plaintext.encode("utf-8"), self._header)
        return base64.b64encode(self._header + nonce + body).decode("ascii")

    def encrypt_optional(self, plaintext: Optional[str]) -> Optional[str]:
        return self.encrypt(plaintext) if plaintext else None

    def decrypt(self, ciphertext: str) -> str:
        try:
            raw = base64.b64decode(ciphertext, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise MalformedCiphertextError(
                message="Ciphertext is not valid base64",
                operation="decrypt",
            ) from e

        if len(raw) < HEADER_SIZE + NONCE_SIZE + TAG_SIZE:
            raise MalformedCiphertextError(
                message="Ciphertext is too short",
                operation="decrypt",
            )

        if raw[0] != FORMAT_VERSION:
            raise MalformedCiphertextError(
                message=f"Unsupported ciphertext version {raw[0]}",
                operation="decrypt",
            )

        header = raw[:HEADER_SIZE]
        if header[1:] != self._key_id:
            raise WrongKeyError(
                message="Ciphertext was encrypted with a different key",
                operation="decrypt",
            )

        nonce = raw[HEADER_SIZE:HEADER_SIZE + NONCE_SIZE]
        body = raw[HEADER_SIZE + NONCE_SIZE:]
        try:
            plaintext = self._aead.decrypt(nonce, body, header)
        except InvalidTag as e:
            raise IntegrityCheckError(
                message="Ciphertext failed integrity check",
                operation="decrypt",
            ) from e

        return plaintext.decode("utf-8")

    def decrypt_optional(self, ciphertext: Optional[str]) -> Optional[str]:
        return self.decrypt(ciphertext) if ciphertext else None


def encrypt_secret(plaintext: str, key: str) -> str:
    """Encrypt ``plaintext`` under master ``key``."""
    return SecretCodec(key).encrypt(plaintext)


def decrypt_secret(ciphertext: str, key: str) -> str:
    """
    Decrypt a value produced by encrypt_secret.

    Raises:
        DecryptionFailedError: one of its three subclasses
    """
    return SecretCodec(key).decrypt(ciphertext)
