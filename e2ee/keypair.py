"""
Asymmetric key pairs.

A KeyPair is one of two closed variants selected by its `type` tag:
- EC: a secp256k1 BIP-32 master node, ECIES encryption, compact signatures
- RSA: legacy keys, RSA-OAEP encryption and PKCS#1 v1.5 signatures

Both expose the same capabilities: sign, encrypt, decrypt, wrap/unwrap a
resource key and export the private material.
"""

import json
import base64
import binascii
import importlib
import logging
from dataclasses import replace
from enum import Enum
from types import ModuleType
from typing import Union

from mnemonic import Mnemonic

from . import ec
from .encoding import decode_uri, encode_uri, ensure_unarmored
from .exceptions import DecryptionError, KeyMaterialError, UnsupportedDerivationError, WrapError
from .symmetric import SymmetricKey, export_key, import_key

logger = logging.getLogger(__name__)

# Publicly known mnemonic behind every write-only key pair; must never change
WRITE_ONLY_MNEMONIC = "verify pole torch letter thumb payment soda speed degree memory angle private"


class KeyType(str, Enum):
    """Asymmetric key backends."""
    EC = "EC"
    RSA = "RSA"


class BoardKeyType(str, Enum):
    """Tag stored next to a wrapped resource key (`keyType`)."""
    EC = "EC"
    AES_CBC = "AES-CBC"


_legacy_rsa: ModuleType | None = None


def legacy_rsa_backend() -> ModuleType:
    """
    Load the RSA backend on first use and keep it for the process lifetime.

    RSA only exists to log in accounts created before EC keys; new keys
    never go through it.
    """
    global _legacy_rsa
    if _legacy_rsa is None:
        logger.info("Loading legacy RSA backend")
        _legacy_rsa = importlib.import_module(f"{__package__}.rsa")
    return _legacy_rsa


def _key_type(value: Union[str, KeyType]) -> KeyType:
    try:
        return KeyType(value)
    except ValueError as e:
        raise KeyMaterialError(f"Unknown key type: {value!r}") from e


class KeyPair:
    """An EC or RSA key pair. Never mutated after construction."""

    def __init__(
        self,
        key_type: KeyType,
        public_key: str,
        *,
        hd_key: ec.HDNode | None = None,
        rsa_private_key=None,
        rsa_public_key=None,
        write_only: bool = False,
    ):
        self.type = key_type
        self.public_key = (
            encode_uri(ensure_unarmored(public_key)) if key_type == KeyType.RSA else public_key
        )
        self._hd_key = hd_key
        self._rsa_private_key = rsa_private_key
        self._rsa_public_key = rsa_public_key
        self._write_only = write_only

    def __repr__(self) -> str:
        mode = ", write-only" if self._write_only else ""
        return f"KeyPair({self.type.value}{mode}, public_key={self.public_key[:16]}...)"

    @property
    def is_write_only(self) -> bool:
        """True for key pairs built from a public key alone."""
        return self._write_only

    # ================= Construction =================
    @classmethod
    def from_raw(cls, public_key: str, private_key: str) -> "KeyPair":
        """Build an RSA key pair from PEM (armoured or not) public and private keys."""
        backend = legacy_rsa_backend()
        return cls(
            KeyType.RSA,
            public_key,
            rsa_public_key=backend.import_public_key(public_key),
            rsa_private_key=backend.import_private_key(private_key),
        )

    @classmethod
    def _from_node(cls, node: ec.HDNode, write_only: bool = False) -> "KeyPair":
        return cls(
            KeyType.EC,
            base64.b64encode(node.public_key).decode("ascii"),
            hd_key=node,
            write_only=write_only,
        )

    @classmethod
    def from_seed(cls, key_type: Union[str, KeyType], seed: bytes) -> "KeyPair":
        """
        Derive a key pair from seed bytes.

        Only EC keys can be derived. Legacy RSA accounts were generated by a
        seeded browser key generator this client does not reproduce; they
        log in through from_raw with their exported keys instead.

        Raises:
            UnsupportedDerivationError: For RSA
            KeyMaterialError: If the seed is empty or does not yield a valid key
        """
        if _key_type(key_type) == KeyType.RSA:
            raise UnsupportedDerivationError("RSA key pairs cannot be derived from a seed")
        return cls._from_node(ec.HDNode.from_master_seed(seed))

    @classmethod
    def from_mnemonic(cls, key_type: Union[str, KeyType], mnemonic: str) -> "KeyPair":
        """Derive a key pair from a mnemonic phrase (checksum not validated here)."""
        if _key_type(key_type) == KeyType.RSA:
            raise UnsupportedDerivationError("RSA key pairs cannot be derived from a mnemonic")
        return cls._from_node(ec.HDNode.from_master_seed(Mnemonic.to_seed(mnemonic)))

    @classmethod
    def from_private_key(cls, private_key: str) -> "KeyPair":
        """
        Rebuild an EC key pair from its extended private key string.

        Raises:
            KeyMaterialError: If the string is not a valid xprv
        """
        node = ec.HDNode.from_extended_key(private_key)
        if node.private_key is None:
            raise KeyMaterialError("Extended key has no private key")
        return cls._from_node(node)

    @classmethod
    def from_public_key(cls, public_key: str) -> "KeyPair":
        """
        Build a write-only EC key pair for a public key.

        The node is derived from a fixed public mnemonic and its public key is
        replaced with the caller's. The result can encrypt and wrap for that
        public key; every private operation raises KeyMaterialError.
        """
        try:
            raw = base64.b64decode(public_key, validate=True)
        except (binascii.Error, ValueError) as e:
            raise KeyMaterialError(f"Invalid public key encoding: {e}") from e
        ec.normalise_public_key(raw)

        node = ec.HDNode.from_master_seed(Mnemonic.to_seed(WRITE_ONLY_MNEMONIC))
        return cls._from_node(replace(node, public_key=raw), write_only=True)

    @classmethod
    def generate(cls) -> "KeyPair":
        """Create a fresh EC key pair from a new random mnemonic."""
        return cls.from_mnemonic(KeyType.EC, Mnemonic("english").generate(strength=128))

    # ================= Capabilities =================
    def _require_private(self, operation: str) -> None:
        if self._write_only:
            raise KeyMaterialError(f"Cannot {operation}: key pair is write-only")

    def sign(self, message: bytes) -> bytes:
        """
        Sign a message.

        EC keys sign a 32-byte digest; RSA keys hash the message themselves.
        """
        self._require_private("sign")
        if self.type == KeyType.RSA:
            return legacy_rsa_backend().sign(message, self._rsa_private_key)
        return ec.sign(message, self._hd_key.private_key)

    def verify(self, message: bytes, signature: bytes) -> bool:
        if self.type == KeyType.RSA:
            return legacy_rsa_backend().verify(message, signature, self._rsa_public_key)
        return ec.verify(message, signature, self._hd_key.public_key)

    def encrypt(self, message: bytes) -> bytes:
        if self.type == KeyType.RSA:
            return legacy_rsa_backend().encrypt(message, self._rsa_public_key)
        return ec.encrypt(message, self._hd_key.public_key)

    def decrypt(self, message: bytes) -> bytes:
        """
        Decrypt a message addressed to this key pair.

        Raises:
            KeyMaterialError: On a write-only key pair
            DecryptionError: If the ciphertext is malformed or not for this key
        """
        self._require_private("decrypt")
        if self.type == KeyType.RSA:
            return legacy_rsa_backend().decrypt(message, self._rsa_private_key)
        return ec.decrypt(message, self._hd_key.private_key)

    def wrap_key(self, key: Union[SymmetricKey, "KeyPair", bytes]) -> str:
        """Encrypt a resource key (or raw key bytes) to this key pair, base64 encoded."""
        return base64.b64encode(self.encrypt(_exported(key))).decode("ascii")

    def unwrap_key(
        self, wrapped: str, key_type: Union[str, BoardKeyType]
    ) -> Union[SymmetricKey, "KeyPair"]:
        """
        Recover a wrapped resource key.

        Args:
            wrapped: base64 wrapped key
            key_type: "EC" for a wrapped extended private key, otherwise a
                symmetric key is expected

        Raises:
            WrapError: If the key cannot be recovered
        """
        self._require_private("unwrap a key")
        try:
            decrypted = self.decrypt(base64.b64decode(wrapped, validate=True))
        except (binascii.Error, ValueError, DecryptionError) as e:
            raise WrapError(f"Unable to unwrap key: {e}") from e

        try:
            if key_type == BoardKeyType.EC:
                return KeyPair.from_private_key(decrypted.decode("ascii"))
            return import_key(decrypted)
        except (UnicodeDecodeError, KeyMaterialError) as e:
            raise WrapError(f"Unwrapped key is not valid {key_type} material: {e}") from e

    @staticmethod
    def encrypt_with_public_key(
        key_type: Union[str, KeyType], public_key: str, payload: bytes
    ) -> bytes:
        """Encrypt for a third party using only their public key string."""
        if _key_type(key_type) == KeyType.RSA:
            backend = legacy_rsa_backend()
            return backend.encrypt(payload, backend.import_public_key(decode_uri(public_key)))
        try:
            raw = base64.b64decode(public_key, validate=True)
        except (binascii.Error, ValueError) as e:
            raise KeyMaterialError(f"Invalid public key encoding: {e}") from e
        return ec.encrypt(payload, raw)

    @staticmethod
    def wrap_with_public_key(
        key_type: Union[str, KeyType],
        public_key: str,
        key: Union[SymmetricKey, "KeyPair", bytes],
    ) -> str:
        """Wrap a resource key for a third party using only their public key string."""
        encrypted = KeyPair.encrypt_with_public_key(key_type, public_key, _exported(key))
        return base64.b64encode(encrypted).decode("ascii")

    def export(self) -> str:
        """
        Serialise the private material.

        Returns:
            EC: the extended private key; RSA: JSON with unarmored public and
            PKCS#8 private key bodies
        """
        self._require_private("export")
        if self.type == KeyType.RSA:
            der = legacy_rsa_backend().private_key_der(self._rsa_private_key)
            return json.dumps(
                {
                    "publicKey": decode_uri(self.public_key),
                    "privateKey": base64.b64encode(der).decode("ascii"),
                },
                separators=(",", ":"),
            )
        return self._hd_key.private_extended_key


def _exported(key: Union[SymmetricKey, KeyPair, bytes]) -> bytes:
    if isinstance(key, KeyPair):
        return key.export().encode("utf-8")
    if isinstance(key, SymmetricKey):
        return export_key(key)
    return bytes(key)
