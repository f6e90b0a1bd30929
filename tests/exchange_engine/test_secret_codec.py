"""
Tests for the secret codec.
"""

import base64

import pytest

from exchange_engine.errors import (
    DecryptionFailedError,
    IntegrityCheckError,
    InternalError,
    MalformedCiphertextError,
    WrongKeyError,
)
from exchange_engine.secret_codec import SecretCodec, decrypt_secret, encrypt_secret


class TestSecretCodec:
    """Encrypt / decrypt behaviour and failure classification."""

    def test_round_trip(self):
        codec = SecretCodec("master-key")
        ciphertext = codec.encrypt("my-api-secret")

        assert ciphertext != "my-api-secret"
        assert codec.decrypt(ciphertext) == "my-api-secret"

    def test_unicode_round_trip(self):
        assert decrypt_secret(encrypt_secret("کلید-🔑", "k"), "k") == "کلید-🔑"

    def test_nonce_is_random(self):
        codec = SecretCodec("master-key")
        assert codec.encrypt("same") != codec.encrypt("same")

    def test_wrong_key(self):
        ciphertext = encrypt_secret("secret", "key-one")

        with pytest.raises(WrongKeyError) as exc_info:
            decrypt_secret(ciphertext, "key-two")
        assert isinstance(exc_info.value, DecryptionFailedError)

    def test_tampered_ciphertext(self):
        codec = SecretCodec("master-key")
        raw = bytearray(base64.b64decode(codec.encrypt("secret")))
        raw[-1] ^= 0x01
        tampered = base64.b64encode(bytes(raw)).decode()

        with pytest.raises(IntegrityCheckError):
            codec.decrypt(tampered)

    @pytest.mark.parametrize("value", ["not base64 !!", base64.b64encode(b"short").decode()])
    def test_malformed_input(self, value):
        with pytest.raises(MalformedCiphertextError):
            SecretCodec("master-key").decrypt(value)

    def test_unknown_version(self):
        codec = SecretCodec("master-key")
        raw = bytearray(base64.b64decode(codec.encrypt("secret")))
        raw[0] = 9

        with pytest.raises(MalformedCiphertextError):
            codec.decrypt(base64.b64encode(bytes(raw)).decode())

    def test_optional_helpers(self):
        codec = SecretCodec("master-key")

        assert codec.encrypt_optional(None) is None
        assert codec.decrypt_optional(None) is None
        assert codec.decrypt_optional(codec.encrypt_optional("x")) == "x"

    def test_missing_key(self):
        with pytest.raises(InternalError) as exc_info:
            SecretCodec("")
        assert exc_info.value.error.code == "ENCRYPTION_KEY_MISSING"
