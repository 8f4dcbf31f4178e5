"""
Seed derivation from a mnemonic phrase or an email + password pair.

Current accounts derive their seed with PBKDF2-HMAC-SHA256 (email as salt)
or BIP-39. Older accounts used other derivations, so login walks an ordered
list of candidates until one reproduces the stored public key.
"""

import hashlib
from dataclasses import dataclass
from typing import Callable

from mnemonic import Mnemonic

from .exceptions import KeyMaterialError
from .keypair import KeyType

PBKDF2_ITERATIONS = 10000
# Output lengths are byte counts, as used by every deployed client
PBKDF2_SEED_LEN = 256
PBKDF2_WIDE_SEED_LEN = 512

_wordlist = Mnemonic("english")


@dataclass(frozen=True)
class SeedCandidate:
    """A key type to try together with a lazily derived seed."""
    key_type: KeyType
    seed: Callable[[], bytes]


def pbkdf_seed(email: str, password: str, length: int = PBKDF2_SEED_LEN) -> bytes:
    """PBKDF2-HMAC-SHA256 keyed by the password, salted with the email."""
    return hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        email.encode("utf-8"),
        PBKDF2_ITERATIONS,
        dklen=length,
    )


def deprecated_seed(email: str, password: str) -> bytes:
    """
    SHA-256 of "email:password".

    DEPRECATED AND INSECURE: no per-account salt or work factor. Only used to
    recover accounts created with it; never use it for new accounts.
    """
    return hashlib.sha256(f"{email}:{password}".encode("utf-8")).digest()


def mnemonic_seed(mnemonic: str) -> bytes:
    """
    BIP-39 seed of a validated mnemonic.

    Raises:
        KeyMaterialError: If the mnemonic checksum or words are invalid
    """
    if not _is_valid_mnemonic(mnemonic):
        raise KeyMaterialError("Not a valid bip39 mnemonic")
    return Mnemonic.to_seed(mnemonic.strip())


def _is_valid_mnemonic(mnemonic: str) -> bool:
    try:
        return _wordlist.check(mnemonic.strip())
    except (LookupError, ValueError):
        return False


def get_seed(email: str, password: str | None = None, mnemonic: str | None = None) -> bytes:
    """
    Derive the current seed for an account.

    A mnemonic takes precedence over a password.

    Raises:
        KeyMaterialError: If neither is provided or the mnemonic is invalid
    """
    if mnemonic:
        return mnemonic_seed(mnemonic)
    if password:
        return pbkdf_seed(email, password)
    raise KeyMaterialError("Neither password or mnemonic provided")


def get_possible_password_seeds(
    email: str, password: str | None = None, mnemonic: str | None = None
) -> list[SeedCandidate]:
    """
    List the seed derivations to try at login, most likely first.

    Seeds are thunks so callers only pay for the derivations they try.

    Raises:
        KeyMaterialError: If neither password nor mnemonic is provided
    """
    if mnemonic:
        return [
            SeedCandidate(KeyType.EC, lambda: mnemonic_seed(mnemonic)),
            SeedCandidate(KeyType.RSA, lambda: Mnemonic.to_seed(mnemonic)),
        ]

    if password:
        return [
            # Accounts created after the move away from RSA
            SeedCandidate(KeyType.EC, lambda: pbkdf_seed(email, password)),
            SeedCandidate(KeyType.EC, lambda: deprecated_seed(email, password)),
            SeedCandidate(KeyType.RSA, lambda: deprecated_seed(email, password)),
            SeedCandidate(KeyType.EC, lambda: pbkdf_seed(email, password, PBKDF2_WIDE_SEED_LEN)),
        ]

    raise KeyMaterialError("Missing seed material")
