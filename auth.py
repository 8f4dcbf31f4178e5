"""
Authentication handling for the Portabella encrypted client.

Manages:
- Login recovery: finding the seed derivation that reproduces an account's key
- Signed challenges sent with every authenticated request
- Registration payloads
"""

import time
import base64
import asyncio
import hashlib
import logging
from typing import Optional
from dataclasses import dataclass

from config import config
from e2ee.exceptions import E2EEError, KeyMaterialError, UnsupportedDerivationError
from e2ee.keypair import KeyPair, KeyType
from e2ee.seed import SeedCandidate, get_possible_password_seeds

logger = logging.getLogger(__name__)


@dataclass
class SignedChallenge:
    """A timestamp challenge signed by the user's key pair."""
    challenge: str
    signature: str

    @property
    def issued_at(self) -> float:
        """Issue time in seconds since the epoch."""
        return int(self.challenge) / 1000


def generate_signature(key_pair: KeyPair) -> SignedChallenge:
    """Sign the current millisecond timestamp (SHA-256 digest of its string form)."""
    challenge = str(int(time.time() * 1000))
    digest = hashlib.sha256(challenge.encode("utf-8")).digest()
    signature = base64.b64encode(key_pair.sign(digest)).decode("ascii")
    return SignedChallenge(challenge=challenge, signature=signature)


def _derive_candidate(candidate: SeedCandidate) -> KeyPair:
    return KeyPair.from_seed(candidate.key_type, candidate.seed())


def _no_match(skipped: list[KeyType]) -> KeyMaterialError:
    if skipped:
        return KeyMaterialError(
            "No seed derivation matches the stored public key; "
            f"{len(skipped)} legacy RSA candidate(s) skipped, import the exported RSA key instead"
        )
    return KeyMaterialError("No seed derivation matches the stored public key")


def recover_key_pair(
    email: str,
    stored_public_key: str,
    password: Optional[str] = None,
    mnemonic: Optional[str] = None,
) -> KeyPair:
    """
    Find the key pair of an existing account.

    Candidates are tried in order; the first whose public key equals the
    account's stored public key wins. RSA candidates cannot be derived and
    are skipped with a warning.

    Raises:
        KeyMaterialError: If no candidate matches
    """
    skipped = []
    for index, candidate in enumerate(get_possible_password_seeds(email, password, mnemonic)):
        try:
            key_pair = _derive_candidate(candidate)
        except UnsupportedDerivationError as e:
            logger.warning(f"Seed candidate {index} skipped: {e}")
            skipped.append(candidate.key_type)
            continue
        except E2EEError as e:
            logger.debug(f"Seed candidate {index} ({candidate.key_type.value}) failed: {e}")
            continue
        if key_pair.public_key == stored_public_key:
            logger.info(f"Recovered {candidate.key_type.value} key pair with seed candidate {index}")
            return key_pair

    raise _no_match(skipped)


async def recover_key_pair_concurrently(
    email: str,
    stored_public_key: str,
    password: Optional[str] = None,
    mnemonic: Optional[str] = None,
) -> KeyPair:
    """
    Same as recover_key_pair, deriving all candidates at once in worker threads.

    The first derivation to match is returned and the others are cancelled.
    """
    candidates = get_possible_password_seeds(email, password, mnemonic)
    skipped = []
    tasks = [
        asyncio.create_task(asyncio.to_thread(_derive_candidate, candidate))
        for candidate in candidates
    ]
    try:
        for finished in asyncio.as_completed(tasks):
            try:
                key_pair = await finished
            except UnsupportedDerivationError as e:
                logger.warning(f"Seed candidate skipped: {e}")
                skipped.append(KeyType.RSA)
                continue
            except E2EEError as e:
                logger.debug(f"Seed candidate failed: {e}")
                continue
            if key_pair.public_key == stored_public_key:
                return key_pair
    finally:
        for task in tasks:
            task.cancel()

    raise _no_match(skipped)


class AuthManager:
    """Produces the signed-challenge headers for authenticated requests."""

    def __init__(self, key_pair: Optional[KeyPair], signature_ttl: int = config.SIGNATURE_TTL_SECONDS):
        """
        Args:
            key_pair: The user's key pair, or None for anonymous access
            signature_ttl: Seconds before a challenge is re-signed
        """
        self.key_pair = key_pair
        self.signature_ttl = signature_ttl
        self._signed: Optional[SignedChallenge] = None

    @property
    def is_authenticated(self) -> bool:
        return self.key_pair is not None

    def _is_signature_expired(self) -> bool:
        if self._signed is None:
            return True
        return time.time() - self._signed.issued_at >= self.signature_ttl

    def maybe_refresh_signature(self) -> None:
        """Re-sign a fresh challenge when none exists or the current one is stale."""
        if self.key_pair is None or not self._is_signature_expired():
            return
        self._signed = generate_signature(self.key_pair)

    def get_auth_header(self) -> dict[str, str]:
        """Get authentication headers; empty for anonymous access."""
        if self.key_pair is None:
            return {}
        self.maybe_refresh_signature()
        return {
            "public-key": self.key_pair.public_key,
            "challenge": self._signed.challenge,
            "signature": self._signed.signature,
        }


def registration_payload(key_pair: KeyPair, email: str, **params) -> dict:
    """
    Build the body of a registration request.

    Raises:
        KeyMaterialError: If the key pair is not an EC key (new accounts are EC only)
    """
    if key_pair.type != KeyType.EC:
        raise KeyMaterialError("New accounts must use EC keys")

    signed = generate_signature(key_pair)
    return {
        **params,
        "email": email,
        "publicKey": key_pair.public_key,
        "keyType": KeyType.EC.value,
        "signature": signed.signature,
        "challenge": signed.challenge,
    }
