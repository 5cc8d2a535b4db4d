"""Fernet encryption for blob payloads and locally stored health results.

Metric blobs are sealed before upload to the blob store; the manifest is
uploaded in clear as the public entry point to a dataset. Checksums are
SHA-256 over the bytes actually stored.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


def sha256_hex(data: str | bytes) -> str:
    """Hex SHA-256 digest of ``data`` (strings are UTF-8 encoded)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


class BlobEncryptor:
    """Symmetric encryption of raw payloads and JSON values.

    Usage::

        encryptor = BlobEncryptor(key=BlobEncryptor.generate_key())
        sealed = encryptor.encrypt(b"...jsonl...")
        encryptor.decrypt(sealed)  # b"...jsonl..."
    """

    def __init__(self, key: str) -> None:
        """Initialize with a Fernet key.

        Raises:
            EncryptionError: If the key is empty or invalid.
        """
        if not key or not key.strip():
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        except (ValueError, TypeError) as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc

    def encrypt(self, payload: bytes) -> bytes:
        """Seal raw bytes into a Fernet token (URL-safe base64 bytes)."""
        try:
            return self._fernet.encrypt(payload)
        except TypeError as exc:
            raise EncryptionError(f"Encryption failed: {exc}") from exc

    def decrypt(self, token: bytes | str) -> bytes:
        """Open a Fernet token produced by :meth:`encrypt`.

        Raises:
            EncryptionError: If the token is invalid or the key is wrong.
        """
        if isinstance(token, str):
            token = token.encode("utf-8")
        try:
            return self._fernet.decrypt(token)
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        except TypeError as exc:
            raise EncryptionError(f"Decryption failed: {exc}") from exc

    def encrypt_json(self, data: Any) -> str:
        """Encrypt a JSON-serializable value to a token string ('' for None)."""
        if data is None:
            return ""
        try:
            plaintext = json.dumps(data, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Encryption failed: {exc}") from exc
        return self.encrypt(plaintext).decode("utf-8")

    def decrypt_json(self, token: str) -> Any:
        """Decrypt a token from :meth:`encrypt_json` (None for '')."""
        if not token:
            return None
        plaintext = self.decrypt(token)
        try:
            return json.loads(plaintext)
        except ValueError as exc:
            raise EncryptionError(f"Decryption failed: {exc}") from exc

    @staticmethod
    def generate_key() -> str:
        """Generate a new URL-safe base64-encoded 32-byte Fernet key."""
        return Fernet.generate_key().decode("utf-8")
