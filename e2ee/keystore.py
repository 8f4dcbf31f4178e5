"""
Local storage for the user's key pair.

The exported private key is encrypted with AES-256-GCM under a key derived
from a local passphrase with Argon2id, so the mnemonic or password does not
have to be re-entered on every start.
"""

import os
import json
import base64
import logging
from pathlib import Path
from typing import Optional

from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from config import config
from .exceptions import KeyMaterialError
from .keypair import KeyPair, KeyType

logger = logging.getLogger(__name__)

SALT_LEN = 16

# Argon2id cost for new key files; each file records the cost it was written with
KDF_PARAMS = {"timeCost": 3, "memoryCost": 65536, "parallelism": 4}


def _storage_key(passphrase: str, salt: bytes, params: dict) -> bytes:
    """AES-256 key for a key file, from the local passphrase."""
    return hash_secret_raw(
        secret=passphrase.encode("utf-8"),
        salt=salt,
        time_cost=params["timeCost"],
        memory_cost=params["memoryCost"],
        parallelism=params["parallelism"],
        hash_len=32,
        type=Type.ID,
    )


class KeyStore:
    """Stores one exported key pair, encrypted at rest."""

    NONCE_LEN = 12  # 96 bits for AES-GCM
    FILENAME = "keypair.enc"

    def __init__(self, storage_dir: Optional[Path] = None):
        """
        Args:
            storage_dir: Directory holding the encrypted key file, config.keys_dir when omitted
        """
        self.storage_dir = storage_dir if storage_dir is not None else config.keys_dir
        self.key_path = self.storage_dir / self.FILENAME
        self._unlocked: Optional[KeyPair] = None

    @property
    def has_key(self) -> bool:
        return self.key_path.exists()

    @property
    def is_unlocked(self) -> bool:
        return self._unlocked is not None

    @property
    def key_pair(self) -> Optional[KeyPair]:
        """The unlocked key pair, if any."""
        return self._unlocked

    def save(self, key_pair: KeyPair, passphrase: str) -> None:
        """
        Encrypt and persist a key pair, keeping it unlocked in memory.

        Raises:
            KeyMaterialError: If the key pair is write-only
        """
        exported = key_pair.export().encode("utf-8")
        salt = os.urandom(SALT_LEN)
        derived_key = _storage_key(passphrase, salt, KDF_PARAMS)

        nonce = os.urandom(self.NONCE_LEN)
        ciphertext = AESGCM(derived_key).encrypt(nonce, exported, None)

        stored = {
            "keyType": key_pair.type.value,
            "publicKey": key_pair.public_key,
            "salt": base64.b64encode(salt).decode("ascii"),
            "nonce": base64.b64encode(nonce).decode("ascii"),
            "ciphertext": base64.b64encode(ciphertext).decode("ascii"),
            "kdf": "argon2id",
            "kdfParams": KDF_PARAMS,
        }

        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self.key_path.write_text(json.dumps(stored, indent=2))
        self._unlocked = key_pair
        logger.info(f"Stored {key_pair.type.value} key pair in {self.key_path}")

    def stored_public_key(self) -> Optional[str]:
        """Public key recorded next to the encrypted key, readable without unlocking."""
        if not self.has_key:
            return None
        return json.loads(self.key_path.read_text()).get("publicKey")

    def unlock(self, passphrase: str) -> KeyPair:
        """
        Decrypt the stored key pair.

        Raises:
            KeyMaterialError: If no key is stored, the file is damaged or the passphrase is wrong
        """
        if not self.has_key:
            raise KeyMaterialError("No stored key pair. Save one first.")

        try:
            stored = json.loads(self.key_path.read_text())
            salt = base64.b64decode(stored["salt"], validate=True)
            nonce = base64.b64decode(stored["nonce"], validate=True)
            ciphertext = base64.b64decode(stored["ciphertext"], validate=True)
            derived_key = _storage_key(passphrase, salt, stored.get("kdfParams", KDF_PARAMS))
        except (KeyError, TypeError, ValueError) as e:
            raise KeyMaterialError(f"Corrupted key file: {e}") from e

        try:
            exported = AESGCM(derived_key).decrypt(nonce, ciphertext, None).decode("utf-8")
        except InvalidTag as e:
            raise KeyMaterialError("Wrong passphrase or corrupted key file") from e

        if stored["keyType"] == KeyType.RSA.value:
            raw = json.loads(exported)
            key_pair = KeyPair.from_raw(raw["publicKey"], raw["privateKey"])
        else:
            key_pair = KeyPair.from_private_key(exported)

        self._unlocked = key_pair
        return key_pair

    def lock(self) -> None:
        """Forget the unlocked key pair."""
        self._unlocked = None

    def clear(self) -> None:
        """Remove the stored key file."""
        self.lock()
        if self.key_path.exists():
            self.key_path.unlink()
