"""AES-256-GCM encryption of individual vault item values.

Stored format: ``encrypted_value`` is base64(ciphertext || 16-byte GCM tag) and
``iv`` is base64 of the 16-byte random IV, kept in its own column.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM


logger = logging.getLogger(__name__)

ALGORITHM = "aes-256-gcm"
IV_LENGTH = 16
AUTH_TAG_LENGTH = 16
KEY_LENGTH = 32
KEY_HEX_LENGTH = KEY_LENGTH * 2


class ConfigurationError(Exception):
    pass


class EncryptionError(Exception):
    pass


class DecryptionError(Exception):
    pass


@dataclass(frozen=True)
class EncryptedValue:
    ciphertext: str
    iv: str


@dataclass(frozen=True)
class DecryptedValue:
    plaintext: str | None

    @property
    def failed(self) -> bool:
        return self.plaintext is None


def generate_key() -> str:
    return secrets.token_bytes(KEY_LENGTH).hex()


def parse_key_hex(key_hex: str) -> bytes:
    normalized = key_hex.strip()
    if len(normalized) != KEY_HEX_LENGTH:
        raise ConfigurationError(
            f"VAULT_ENCRYPTION_KEY must be exactly {KEY_HEX_LENGTH} hex characters ({KEY_LENGTH} bytes)"
        )
    try:
        return bytes.fromhex(normalized)
    except ValueError as exc:
        raise ConfigurationError("VAULT_ENCRYPTION_KEY must contain only hex characters") from exc


def resolve_encryption_key(
    *,
    key_hex: str | None,
    fallback_secret: str | None,
    production: bool,
) -> bytes:
    if key_hex:
        return parse_key_hex(key_hex)

    if production:
        logger.error("VAULT_ENCRYPTION_KEY is not set in production")
        raise ConfigurationError("VAULT_ENCRYPTION_KEY environment variable is required in production")

    logger.warning(
        "VAULT_ENCRYPTION_KEY is not set; deriving the vault key from JWT_SECRET. "
        "Vault secrets are only as strong as that secret. Never run like this in production."
    )
    secret = fallback_secret or "development-secret"
    return hashlib.sha256(secret.encode("utf-8")).digest()


def _b64decode(value: str) -> bytes:
    return base64.b64decode(value.encode("ascii"), validate=True)


def _encrypt_with(aesgcm: AESGCM, plaintext: str) -> EncryptedValue:
    iv = secrets.token_bytes(IV_LENGTH)
    # AESGCM appends the 16-byte tag to the ciphertext.
    combined = aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
    return EncryptedValue(
        ciphertext=base64.b64encode(combined).decode("ascii"),
        iv=base64.b64encode(iv).decode("ascii"),
    )


def _decrypt_with(aesgcm: AESGCM, ciphertext_b64: str, iv_b64: str) -> str:
    iv = _b64decode(iv_b64)
    combined = _b64decode(ciphertext_b64)
    if len(iv) != IV_LENGTH or len(combined) < AUTH_TAG_LENGTH:
        raise ValueError("malformed ciphertext or iv")
    return aesgcm.decrypt(iv, combined, None).decode("utf-8")


class Cipher:
    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_LENGTH:
            raise ConfigurationError(f"vault encryption key must be {KEY_LENGTH} bytes")
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_settings(cls, app_settings: Any) -> "Cipher":
        key = resolve_encryption_key(
            key_hex=app_settings.vault_encryption_key,
            fallback_secret=app_settings.jwt_secret,
            production=app_settings.is_production,
        )
        return cls(key)

    @classmethod
    def from_hex(cls, key_hex: str) -> "Cipher":
        return cls(parse_key_hex(key_hex))

    def __repr__(self) -> str:
        return f"Cipher(algorithm={ALGORITHM!r})"

    def encrypt(self, plaintext: str) -> EncryptedValue:
        try:
            return _encrypt_with(self._aesgcm, plaintext)
        except Exception as exc:
            logger.error("Encryption error: %s", type(exc).__name__)
            raise EncryptionError("Failed to encrypt data") from exc

    def decrypt(self, ciphertext_b64: str, iv_b64: str) -> str:
        try:
            return _decrypt_with(self._aesgcm, ciphertext_b64, iv_b64)
        except (InvalidTag, ValueError, TypeError) as exc:
            raise DecryptionError("Failed to decrypt data - data may be corrupted or tampered with") from exc

    def try_decrypt(self, ciphertext_b64: str, iv_b64: str) -> DecryptedValue:
        try:
            return DecryptedValue(plaintext=self.decrypt(ciphertext_b64, iv_b64))
        except DecryptionError:
            return DecryptedValue(plaintext=None)

    def re_encrypt_to(self, target: "Cipher", ciphertext_b64: str, iv_b64: str) -> EncryptedValue:
        """Decrypt under this key and encrypt the plaintext under ``target`` with a fresh IV."""
        return target.encrypt(self.decrypt(ciphertext_b64, iv_b64))


def re_encrypt(ciphertext_b64: str, iv_b64: str, old_key: bytes, new_key: bytes) -> EncryptedValue:
    """Decrypt under ``old_key`` and encrypt the plaintext under ``new_key`` with a fresh IV.

    Only for the offline rotation job; request handling never holds two keys.
    """
    return Cipher(old_key).re_encrypt_to(Cipher(new_key), ciphertext_b64, iv_b64)
