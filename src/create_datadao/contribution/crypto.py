"""
Encryption used by the contribution flow.

Two schemes are involved. The data package is encrypted symmetrically with
OpenPGP, the passphrase being the contributor's wallet signature. That
signature is then ECIES-encrypted to the DataDAO's public key so only the
DataDAO (and the TEE it authorises) can decrypt the package. The ECIES
output is byte-compatible with the ``eccrypto`` JavaScript library:
secp256k1 ECDH, SHA-512 key derivation, AES-256-CBC and HMAC-SHA256.
"""

import hashlib
import hmac
import tempfile
import time
from typing import Dict, Optional, Tuple

import gnupg
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from ..exceptions import DataDAOError

SIGN_MESSAGE = "Please sign to retrieve your encryption key"

# Fixed so the DataDAO can re-derive the same shared secret when validating permissions.
ENCRYPTION_IV = bytes(range(0x01, 0x11))
EPHEMERAL_KEY = bytes([
    0x11, 0x22, 0x33, 0x44, 0x55, 0x66, 0x77, 0x88, 0x99, 0xAA, 0xBB, 0xCC,
    0xDD, 0xEE, 0xFF, 0x00, 0x10, 0x20, 0x30, 0x40, 0x50, 0x60, 0x70, 0x80,
    0x90, 0xA0, 0xB0, 0xC0, 0xD0, 0xE0, 0xF0, 0x00,
])

_IV_SIZE = 16
_PUBKEY_SIZE = 65
_MAC_SIZE = 32


class EncryptionError(DataDAOError):
    """Encryption or decryption failed."""


def encryption_parameters() -> Dict[str, str]:
    """Hex IV and ephemeral key, as sent to the TEE with ``validate_permissions``."""
    return {"iv": ENCRYPTION_IV.hex(), "ephemeral_key": EPHEMERAL_KEY.hex()}


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith("0x") else value


def _load_public_key(public_key: str) -> ec.EllipticCurvePublicKey:
    raw = bytes.fromhex(_strip_0x(public_key))
    if len(raw) == 64:
        raw = b"\x04" + raw
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), raw)
    except ValueError as e:
        raise EncryptionError(f"Invalid secp256k1 public key: {e}")


def _derive_keys(private_key: ec.EllipticCurvePrivateKey, public_key: ec.EllipticCurvePublicKey) -> Tuple[bytes, bytes]:
    shared_x = private_key.exchange(ec.ECDH(), public_key)
    digest = hashlib.sha512(shared_x).digest()
    return digest[:32], digest[32:]


def _aes_cbc(key: bytes, iv: bytes, data: bytes, encrypt: bool) -> bytes:
    cipher = Cipher(algorithms.AES(key), modes.CBC(iv))
    if encrypt:
        padder = padding.PKCS7(128).padder()
        encryptor = cipher.encryptor()
        return encryptor.update(padder.update(data) + padder.finalize()) + encryptor.finalize()
    decryptor = cipher.decryptor()
    unpadder = padding.PKCS7(128).unpadder()
    padded = decryptor.update(data) + decryptor.finalize()
    return unpadder.update(padded) + unpadder.finalize()


def encrypt_with_public_key(
    data: str,
    public_key: str,
    iv: bytes = ENCRYPTION_IV,
    ephemeral_key: bytes = EPHEMERAL_KEY,
) -> str:
    """
    ECIES-encrypt ``data`` to a secp256k1 public key.

    Args:
        data: Plaintext, usually the contributor's signature
        public_key: 64-byte (no prefix) or 65-byte uncompressed key, hex, ``0x`` optional
        iv: 16-byte AES IV
        ephemeral_key: 32-byte ephemeral private key

    Returns:
        Hex of ``iv | ephemeral public key | ciphertext | mac`` without ``0x``
    """
    recipient = _load_public_key(public_key)
    ephemeral = ec.derive_private_key(int.from_bytes(ephemeral_key, "big"), ec.SECP256K1())
    ephemeral_public = ephemeral.public_key().public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)

    encryption_key, mac_key = _derive_keys(ephemeral, recipient)
    ciphertext = _aes_cbc(encryption_key, iv, data.encode(), encrypt=True)
    mac = hmac.new(mac_key, iv + ephemeral_public + ciphertext, hashlib.sha256).digest()
    return (iv + ephemeral_public + ciphertext + mac).hex()


def decrypt_with_private_key(payload: str, private_key: str) -> str:
    """
    Reverse ``encrypt_with_public_key``.

    Raises:
        EncryptionError: If the payload is malformed or the MAC does not match
    """
    raw = bytes.fromhex(_strip_0x(payload))
    if len(raw) < _IV_SIZE + _PUBKEY_SIZE + _MAC_SIZE + 16:
        raise EncryptionError("Encrypted payload is too short")

    iv = raw[:_IV_SIZE]
    ephemeral_public = raw[_IV_SIZE:_IV_SIZE + _PUBKEY_SIZE]
    ciphertext = raw[_IV_SIZE + _PUBKEY_SIZE:-_MAC_SIZE]
    mac = raw[-_MAC_SIZE:]

    recipient = ec.derive_private_key(int(_strip_0x(private_key), 16), ec.SECP256K1())
    encryption_key, mac_key = _derive_keys(recipient, _load_public_key(ephemeral_public.hex()))
    expected = hmac.new(mac_key, iv + ephemeral_public + ciphertext, hashlib.sha256).digest()
    if not hmac.compare_digest(mac, expected):
        raise EncryptionError("Bad MAC")
    return _aes_cbc(encryption_key, iv, ciphertext, encrypt=False).decode()


def _gpg(gnupghome: str) -> gnupg.GPG:
    return gnupg.GPG(gnupghome=gnupghome)


def client_side_encrypt(data: bytes, passphrase: str, gnupghome: Optional[str] = None) -> bytes:
    """
    Symmetrically encrypt ``data`` as a binary OpenPGP message.

    Args:
        data: Plaintext bytes
        passphrase: Password, the contributor's wallet signature
        gnupghome: GnuPG home; a throwaway directory when omitted

    Raises:
        EncryptionError: If gpg reports a failure
    """
    with tempfile.TemporaryDirectory(ignore_cleanup_errors=True) as scratch:
        result = _gpg(gnupghome or scratch).encrypt(
            data, None, symmetric="AES256", passphrase=passphrase, armor=False
        )
    if not result.ok:
        raise EncryptionError(f"OpenPGP encryption failed: {result.status}")
    return result.data


def client_side_decrypt(data: bytes, passphrase: str, gnupghome: Optional[str] = None) -> bytes:
    with tempfile.TemporaryDirectory(ignore_cleanup_errors=True) as scratch:
        result = _gpg(gnupghome or scratch).decrypt(data, passphrase=passphrase)
    if not result.ok:
        raise EncryptionError(f"OpenPGP decryption failed: {result.status}")
    return result.data


def format_vana_file_id(url: str, timestamp: Optional[int] = None) -> str:
    """Contribution label ``vana_submission_<ms>_<last path segment of url>``."""
    timestamp = int(time.time() * 1000) if timestamp is None else timestamp
    return f"vana_submission_{timestamp}_{url[url.rfind('/') + 1:]}"
