"""
Elliptic-curve backend (secp256k1).

Handles:
- BIP-32 master nodes and extended private key strings
- ECIES encryption with an ephemeral key per message
- Deterministic compact signatures over SHA-256 digests

ECIES wire format:
    ephemeral_public_key (65, uncompressed) || nonce (16) || tag (16) || ciphertext
The AES-256-GCM key is HKDF-SHA256 over the ephemeral public key followed by
the uncompressed shared point.
"""

import os
import hmac
import hashlib
import struct
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from ecdsa import SECP256k1, BadSignatureError, SigningKey, VerifyingKey
from ecdsa.errors import MalformedPointError
from ecdsa.util import MalformedSignature, sigdecode_string, sigencode_string_canonize

from .encoding import b58check_decode, b58check_encode
from .exceptions import DecryptionError, KeyMaterialError

MASTER_SECRET = b"Bitcoin seed"
XPRV_VERSION = 0x0488ADE4
XPUB_VERSION = 0x0488B21E
EXTENDED_KEY_LEN = 78

PUBLIC_KEY_LEN = 65  # uncompressed
NONCE_LEN = 16
TAG_LEN = 16
AES_KEY_LEN = 32


@dataclass(frozen=True)
class HDNode:
    """A BIP-32 node: compressed public key, chain code and optional private key."""
    public_key: bytes
    chain_code: bytes
    private_key: bytes | None = None
    depth: int = 0
    index: int = 0
    parent_fingerprint: bytes = b"\x00" * 4

    def __repr__(self) -> str:
        return f"HDNode(public_key={self.public_key.hex()}, depth={self.depth})"

    @classmethod
    def from_master_seed(cls, seed: bytes) -> "HDNode":
        """
        Derive the master node of a seed.

        Raises:
            KeyMaterialError: If the seed is empty or yields an invalid scalar
        """
        if not seed:
            raise KeyMaterialError("Invalid seed, no key material")

        digest = hmac.new(MASTER_SECRET, seed, hashlib.sha512).digest()
        private_key, chain_code = digest[:32], digest[32:]
        return cls(
            public_key=public_key_from_private(private_key),
            chain_code=chain_code,
            private_key=private_key,
        )

    @classmethod
    def from_extended_key(cls, extended_key: str) -> "HDNode":
        """
        Parse an xprv or xpub string.

        Raises:
            KeyMaterialError: If the string is not a valid extended key
        """
        try:
            payload = b58check_decode(extended_key.strip())
        except ValueError as e:
            raise KeyMaterialError(f"Invalid extended key: {e}") from e

        if len(payload) != EXTENDED_KEY_LEN:
            raise KeyMaterialError(f"Extended key must be {EXTENDED_KEY_LEN} bytes, got {len(payload)}")

        version, depth = struct.unpack(">IB", payload[:5])
        parent_fingerprint = payload[5:9]
        (index,) = struct.unpack(">I", payload[9:13])
        chain_code = payload[13:45]
        key = payload[45:]

        if version == XPRV_VERSION:
            if key[0] != 0:
                raise KeyMaterialError("Invalid private key prefix in xprv")
            private_key = key[1:]
            return cls(
                public_key=public_key_from_private(private_key),
                chain_code=chain_code,
                private_key=private_key,
                depth=depth,
                index=index,
                parent_fingerprint=parent_fingerprint,
            )
        if version == XPUB_VERSION:
            return cls(
                public_key=normalise_public_key(key),
                chain_code=chain_code,
                depth=depth,
                index=index,
                parent_fingerprint=parent_fingerprint,
            )
        raise KeyMaterialError(f"Unknown extended key version {version:#x}")

    def _serialise(self, version: int, key: bytes) -> str:
        payload = (
            struct.pack(">IB", version, self.depth)
            + self.parent_fingerprint
            + struct.pack(">I", self.index)
            + self.chain_code
            + key
        )
        return b58check_encode(payload)

    @property
    def private_extended_key(self) -> str:
        if self.private_key is None:
            raise KeyMaterialError("Node has no private key")
        return self._serialise(XPRV_VERSION, b"\x00" + self.private_key)

    @property
    def public_extended_key(self) -> str:
        return self._serialise(XPUB_VERSION, self.public_key)


def public_key_from_private(private_key: bytes) -> bytes:
    """Compressed public key for a 32-byte private scalar."""
    scalar = int.from_bytes(private_key, "big")
    if len(private_key) != 32 or not 0 < scalar < SECP256k1.order:
        raise KeyMaterialError("Private key is outside the secp256k1 range")
    signing_key = SigningKey.from_string(private_key, curve=SECP256k1)
    return signing_key.get_verifying_key().to_string("compressed")


def normalise_public_key(public_key: bytes) -> bytes:
    """Validate a public key in any SEC1 encoding and return it compressed."""
    return _load_public_key(public_key).to_string("compressed")


def _load_public_key(public_key: bytes) -> VerifyingKey:
    try:
        return VerifyingKey.from_string(public_key, curve=SECP256k1)
    except (MalformedPointError, ValueError) as e:
        raise KeyMaterialError(f"Invalid secp256k1 public key: {e}") from e


def _shared_point(public_key: VerifyingKey, private_key: bytes) -> bytes:
    point = public_key.pubkey.point * int.from_bytes(private_key, "big")
    return b"\x04" + point.x().to_bytes(32, "big") + point.y().to_bytes(32, "big")


def _derive_aes_key(ephemeral_public_key: bytes, shared_point: bytes) -> bytes:
    return HKDF(
        algorithm=hashes.SHA256(),
        length=AES_KEY_LEN,
        salt=None,
        info=None,
    ).derive(ephemeral_public_key + shared_point)


def encrypt(message: bytes, public_key: bytes) -> bytes:
    """
    Encrypt a message for the holder of a public key.

    Args:
        message: Plaintext bytes
        public_key: Recipient public key (compressed or uncompressed)

    Returns:
        ECIES ciphertext with the ephemeral public key embedded
    """
    recipient = _load_public_key(public_key)

    ephemeral = SigningKey.generate(curve=SECP256k1)
    ephemeral_public = ephemeral.get_verifying_key().to_string("uncompressed")

    aes_key = _derive_aes_key(ephemeral_public, _shared_point(recipient, ephemeral.to_string()))

    nonce = os.urandom(NONCE_LEN)
    sealed = AESGCM(aes_key).encrypt(nonce, message, None)
    ciphertext, tag = sealed[:-TAG_LEN], sealed[-TAG_LEN:]

    return ephemeral_public + nonce + tag + ciphertext


def decrypt(data: bytes, private_key: bytes) -> bytes:
    """
    Decrypt an ECIES ciphertext.

    Raises:
        DecryptionError: If the data is truncated or fails authentication
    """
    header_len = PUBLIC_KEY_LEN + NONCE_LEN + TAG_LEN
    if len(data) < header_len:
        raise DecryptionError("ECIES ciphertext is too short")

    ephemeral_public = data[:PUBLIC_KEY_LEN]
    nonce = data[PUBLIC_KEY_LEN:PUBLIC_KEY_LEN + NONCE_LEN]
    tag = data[PUBLIC_KEY_LEN + NONCE_LEN:header_len]
    ciphertext = data[header_len:]

    try:
        ephemeral = _load_public_key(ephemeral_public)
    except KeyMaterialError as e:
        raise DecryptionError("ECIES ciphertext has an invalid ephemeral key") from e

    aes_key = _derive_aes_key(ephemeral_public, _shared_point(ephemeral, private_key))
    try:
        return AESGCM(aes_key).decrypt(nonce, ciphertext + tag, None)
    except InvalidTag as e:
        raise DecryptionError("ECIES ciphertext failed authentication") from e


def sign(digest: bytes, private_key: bytes) -> bytes:
    """Sign a 32-byte digest, returning the 64-byte compact r || s (low-s)."""
    if len(digest) != 32:
        raise ValueError("Expected a 32-byte digest")
    signing_key = SigningKey.from_string(private_key, curve=SECP256k1)
    return signing_key.sign_digest_deterministic(
        digest,
        hashfunc=hashlib.sha256,
        sigencode=sigencode_string_canonize,
    )


def verify(digest: bytes, signature: bytes, public_key: bytes) -> bool:
    """Check a compact signature against a digest and public key."""
    try:
        return _load_public_key(public_key).verify_digest(
            signature, digest, sigdecode=sigdecode_string
        )
    except (BadSignatureError, MalformedSignature, KeyMaterialError, ValueError):
        return False
