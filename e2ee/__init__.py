"""
End-to-end encryption for Portabella boards.

Handles:
- Key pairs (EC, legacy RSA) and key wrapping
- Resource keys (AES-CBC)
- Seed derivation (BIP-39, PBKDF2, legacy login recovery)
- Field-level encryption of API records
- Local key storage (Argon2id + AES-GCM)
"""

from .exceptions import (
    DecryptionError,
    E2EEError,
    FieldDecryptError,
    KeyMaterialError,
    MigrationStepError,
    TransportError,
    UnsupportedDerivationError,
    WrapError,
)
from .fields import decrypt_fields, encrypt_fields, recursively_apply
from .keypair import BoardKeyType, KeyPair, KeyType
from .keystore import KeyStore
from .seed import SeedCandidate, get_possible_password_seeds, get_seed
from .symmetric import SymmetricKey

__all__ = [
    "KeyPair",
    "KeyType",
    "BoardKeyType",
    "SymmetricKey",
    "KeyStore",
    "SeedCandidate",
    "get_seed",
    "get_possible_password_seeds",
    "recursively_apply",
    "encrypt_fields",
    "decrypt_fields",
    "E2EEError",
    "KeyMaterialError",
    "WrapError",
    "DecryptionError",
    "FieldDecryptError",
    "TransportError",
    "MigrationStepError",
    "UnsupportedDerivationError",
]
