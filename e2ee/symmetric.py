"""
Symmetric encryption for resource records.

Uses AES-128-CBC with a fresh random IV per message and PKCS#7 padding.
Every operation also accepts an asymmetric KeyPair, in which case it
delegates to that key pair: older boards use a full key pair as their
resource key, newer non-shared boards a plain AES key.
"""

import os
import base64
import binascii
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .exceptions import DecryptionError, KeyMaterialError

if TYPE_CHECKING:
    from .keypair import KeyPair

NAME = "AES-CBC"
SEPARATOR = ":"
KEY_LEN = 16  # 128 bits
IV_LEN = 16


@dataclass(frozen=True)
class SymmetricKey:
    """Raw 128-bit AES-CBC key."""
    raw: bytes

    def __post_init__(self):
        if len(self.raw) != KEY_LEN:
            raise KeyMaterialError(f"{NAME} key must be {KEY_LEN} bytes, got {len(self.raw)}")

    def __repr__(self) -> str:
        return "SymmetricKey(<redacted>)"


ResourceKey = Union[SymmetricKey, "KeyPair"]


def generate() -> SymmetricKey:
    """Generate a new random resource key."""
    return SymmetricKey(os.urandom(KEY_LEN))


def export_key(key: SymmetricKey) -> bytes:
    return key.raw


def import_key(raw: bytes) -> SymmetricKey:
    return SymmetricKey(bytes(raw))


def encrypt_raw(payload: bytes, key: ResourceKey) -> bytes:
    """
    Encrypt a payload.

    Returns:
        iv || ciphertext for a symmetric key, or the key pair's own ciphertext
    """
    if not isinstance(key, SymmetricKey):
        return key.encrypt(payload)

    iv = os.urandom(IV_LEN)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(payload) + padder.finalize()

    encryptor = Cipher(algorithms.AES(key.raw), modes.CBC(iv)).encryptor()
    return iv + encryptor.update(padded) + encryptor.finalize()


def decrypt_raw(data: bytes, key: ResourceKey) -> bytes:
    """Inverse of encrypt_raw."""
    if not isinstance(key, SymmetricKey):
        return key.decrypt(data)

    iv, ciphertext = data[:IV_LEN], data[IV_LEN:]
    if len(iv) != IV_LEN or not ciphertext or len(ciphertext) % IV_LEN:
        raise DecryptionError("Ciphertext has an invalid length")

    decryptor = Cipher(algorithms.AES(key.raw), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise DecryptionError("Invalid padding, wrong key or corrupted ciphertext") from e


def encrypt(payload: bytes, key: ResourceKey) -> str:
    """
    Encrypt a payload to its string wire form.

    Returns:
        base64(iv) + ":" + base64(ciphertext) for a symmetric key,
        base64(ciphertext) for a key pair
    """
    if not isinstance(key, SymmetricKey):
        return base64.b64encode(key.encrypt(payload)).decode("ascii")

    raw = encrypt_raw(payload, key)
    iv, ciphertext = raw[:IV_LEN], raw[IV_LEN:]
    return SEPARATOR.join(base64.b64encode(part).decode("ascii") for part in (iv, ciphertext))


def decrypt(ciphertext: str, key: ResourceKey) -> bytes:
    """Inverse of encrypt."""
    if not isinstance(key, SymmetricKey):
        return key.decrypt(_b64decode(ciphertext))

    parts = ciphertext.split(SEPARATOR)
    if len(parts) != 2:
        raise DecryptionError(f"Expected 'iv{SEPARATOR}ciphertext', got {len(parts)} part(s)")

    iv, body = (_b64decode(part) for part in parts)
    if len(iv) != IV_LEN:
        raise DecryptionError(f"IV must be {IV_LEN} bytes, got {len(iv)}")
    return decrypt_raw(iv + body, key)


def _b64decode(text: str) -> bytes:
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError(f"Invalid base64: {e}") from e
