"""AES-256-GCM encryption for the Garmin credential payload stored on the user row.

Blob layout: ``nonce (12 bytes) || auth tag (16 bytes) || ciphertext``.
"""
from __future__ import annotations

import logging
import os
import re

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.exceptions import ConfigurationError, CredentialCorruptedError


logger = logging.getLogger(__name__)

NONCE_LENGTH = 12
TAG_LENGTH = 16
HEADER_LENGTH = NONCE_LENGTH + TAG_LENGTH

_HEX_KEY_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


class CredentialVault:
    """Symmetric authenticated encryption keyed by ENCRYPTION_KEY.

    Usage:
        vault = CredentialVault(settings.encryption_key)
        blob = vault.encrypt_text(json.dumps(payload))
        payload = json.loads(vault.decrypt_text(blob))
    """

    def __init__(self, key_hex: str | None) -> None:
        if not key_hex:
            raise ConfigurationError("ENCRYPTION_KEY is not set.")
        if not _HEX_KEY_PATTERN.match(key_hex):
            raise ConfigurationError(
                "ENCRYPTION_KEY must be a 64-character hex string (32 bytes for AES-256-GCM)."
            )
        self._aead = AESGCM(bytes.fromhex(key_hex))

    def encrypt(self, plaintext: bytes | str) -> bytes:
        """Encrypt with a fresh random nonce and return the packed blob."""

        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")
        nonce = os.urandom(NONCE_LENGTH)
        # AESGCM appends the tag to the ciphertext; move it into the header.
        sealed = self._aead.encrypt(nonce, plaintext, None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return nonce + tag + ciphertext

    def decrypt(self, blob: bytes) -> bytes:
        """Verify and decrypt a blob produced by :meth:`encrypt`.

        Raises:
            CredentialCorruptedError: blob is truncated, tampered with, or was
                sealed with a different key.
        """

        if not isinstance(blob, (bytes, bytearray, memoryview)) or len(blob) < HEADER_LENGTH:
            raise CredentialCorruptedError()

        blob = bytes(blob)
        nonce = blob[:NONCE_LENGTH]
        tag = blob[NONCE_LENGTH:HEADER_LENGTH]
        ciphertext = blob[HEADER_LENGTH:]
        try:
            return self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as err:
            logger.warning("Credential blob failed authentication check")
            raise CredentialCorruptedError() from err

    def encrypt_text(self, plaintext: str) -> bytes:
        return self.encrypt(plaintext.encode("utf-8"))

    def decrypt_text(self, blob: bytes) -> str:
        try:
            return self.decrypt(blob).decode("utf-8")
        except UnicodeDecodeError as err:
            raise CredentialCorruptedError() from err
