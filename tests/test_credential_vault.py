"""Tests for AES-256-GCM credential encryption."""
import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.exceptions import ConfigurationError, CredentialCorruptedError
from app.services.credential_vault import HEADER_LENGTH, NONCE_LENGTH, CredentialVault


KEY = "ab" * 32


def test_encrypt_uses_fresh_nonce_and_decrypts():
    vault = CredentialVault(KEY)

    first = vault.encrypt_text('{"email": "runner@example.com"}')
    second = vault.encrypt_text('{"email": "runner@example.com"}')

    assert first[:NONCE_LENGTH] != second[:NONCE_LENGTH]
    assert len(first) == HEADER_LENGTH + len('{"email": "runner@example.com"}')
    assert vault.decrypt_text(first) == '{"email": "runner@example.com"}'


@pytest.mark.parametrize("key", [None, "", "ab" * 31, "zz" * 32, "ab" * 33])
def test_rejects_missing_or_malformed_key(key):
    with pytest.raises(ConfigurationError):
        CredentialVault(key)


def test_truncated_blob_is_corrupted():
    vault = CredentialVault(KEY)

    with pytest.raises(CredentialCorruptedError):
        vault.decrypt(b"\x00" * (HEADER_LENGTH - 1))


def test_tampered_blob_is_corrupted():
    vault = CredentialVault(KEY)
    blob = bytearray(vault.encrypt(b"secret"))
    blob[-1] ^= 0x01

    with pytest.raises(CredentialCorruptedError) as exc_info:
        vault.decrypt(bytes(blob))

    assert "reconnect" in exc_info.value.message.lower()


@pytest.mark.parametrize("index", range(NONCE_LENGTH, HEADER_LENGTH))
def test_flipped_tag_bit_is_corrupted(index):
    vault = CredentialVault(KEY)
    plaintext = b'{"email": "runner@example.com", "password": "hunter2"}'
    blob = bytearray(vault.encrypt(plaintext))
    assert len(blob) == HEADER_LENGTH + len(plaintext)

    blob[index] ^= 0x01

    with pytest.raises(CredentialCorruptedError):
        vault.decrypt(bytes(blob))


def test_blob_layout_is_nonce_tag_ciphertext():
    blob = CredentialVault(KEY).encrypt(b"secret")
    nonce = blob[:NONCE_LENGTH]
    tag = blob[NONCE_LENGTH:HEADER_LENGTH]
    ciphertext = blob[HEADER_LENGTH:]

    assert AESGCM(bytes.fromhex(KEY)).decrypt(nonce, ciphertext + tag, None) == b"secret"


def test_blob_from_other_key_is_corrupted():
    blob = CredentialVault(KEY).encrypt(b"secret")

    with pytest.raises(CredentialCorruptedError):
        CredentialVault("cd" * 32).decrypt(blob)
