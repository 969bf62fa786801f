"""Tests for contribution encryption."""

import shutil

import pytest

from create_datadao.contribution.crypto import (
    ENCRYPTION_IV,
    EncryptionError,
    client_side_decrypt,
    client_side_encrypt,
    decrypt_with_private_key,
    encrypt_with_public_key,
    encryption_parameters,
    format_vana_file_id,
)
from create_datadao.utils.wallet import WalletManager

from .conftest import PRIVATE_KEY

requires_gpg = pytest.mark.skipif(shutil.which("gpg") is None, reason="gpg binary not installed")


@pytest.fixture
def wallet():
    return WalletManager(PRIVATE_KEY)


class TestEcies:
    """eccrypto-compatible public key encryption."""

    def test_round_trip(self, wallet):
        signature = wallet.sign_message("Please sign to retrieve your encryption key")

        payload = encrypt_with_public_key(signature, wallet.public_key)

        assert decrypt_with_private_key(payload, PRIVATE_KEY) == signature

    def test_payload_layout(self, wallet):
        payload = encrypt_with_public_key("secret", wallet.public_key)
        raw = bytes.fromhex(payload)

        assert not payload.startswith("0x")
        assert raw[:16] == ENCRYPTION_IV
        assert raw[16] == 0x04
        # iv + ephemeral key + one AES block + mac
        assert len(raw) == 16 + 65 + 16 + 32

    def test_fixed_parameters_are_deterministic(self, wallet):
        assert encrypt_with_public_key("secret", wallet.public_key) == encrypt_with_public_key("secret", wallet.public_key)

    def test_prefixed_public_key_accepted(self, wallet):
        prefixed = "0x04" + wallet.public_key[2:]
        assert encrypt_with_public_key("secret", prefixed) == encrypt_with_public_key("secret", wallet.public_key)

    def test_tampered_payload_rejected(self, wallet):
        payload = bytearray(bytes.fromhex(encrypt_with_public_key("secret", wallet.public_key)))
        payload[-1] ^= 0x01

        with pytest.raises(EncryptionError, match="MAC"):
            decrypt_with_private_key(payload.hex(), PRIVATE_KEY)

    def test_invalid_public_key(self):
        with pytest.raises(EncryptionError):
            encrypt_with_public_key("secret", "0x" + "00" * 64)

    def test_encryption_parameters(self):
        params = encryption_parameters()

        assert params["iv"] == "0102030405060708090a0b0c0d0e0f10"
        assert params["ephemeral_key"].startswith("1122334455")


class TestOpenPgp:
    """Symmetric encryption of the data package."""

    @requires_gpg
    def test_round_trip(self):
        encrypted = client_side_encrypt(b'{"email": "ada@example.com"}', "0xsignature")

        assert b"ada@example.com" not in encrypted
        assert client_side_decrypt(encrypted, "0xsignature") == b'{"email": "ada@example.com"}'

    @requires_gpg
    def test_wrong_passphrase(self):
        encrypted = client_side_encrypt(b"data", "right")

        with pytest.raises(EncryptionError):
            client_side_decrypt(encrypted, "wrong")


def test_format_vana_file_id():
    url = "https://drive.google.com/file/d/1AbC/view"
    assert format_vana_file_id(url, 1700000000000) == "vana_submission_1700000000000_view"
