"""
Legacy RSA backend.

Only accounts created before the move to elliptic-curve keys use this.
New keys must never be created with it. It is loaded on first use by
keypair.legacy_rsa_backend().

- Encryption: RSA-OAEP with SHA-256
- Signing: RSASSA-PKCS1-v1_5 with SHA-256
- Key material: imported from PEM only; keys are never derived from a
  seed here, see KeyPair.from_seed
"""

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey

from .encoding import pem_body_to_der
from .exceptions import DecryptionError, KeyMaterialError


# ================= Serialize / Deserialize =================
def serialize_public_key(public_key: RSAPublicKey) -> str:
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def serialize_private_key(private_key: RSAPrivateKey) -> str:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


def private_key_der(private_key: RSAPrivateKey) -> bytes:
    """PKCS#8 DER bytes of a private key."""
    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def import_public_key(pem: str) -> RSAPublicKey:
    """Load an SPKI public key from armoured or unarmoured PEM text."""
    try:
        key = serialization.load_der_public_key(pem_body_to_der(pem))
    except ValueError as e:
        raise KeyMaterialError(f"Invalid RSA public key: {e}") from e
    if not isinstance(key, RSAPublicKey):
        raise KeyMaterialError("Public key is not an RSA key")
    return key


def import_private_key(pem: str) -> RSAPrivateKey:
    """Load a PKCS#8 private key from armoured or unarmoured PEM text."""
    try:
        key = serialization.load_der_private_key(pem_body_to_der(pem), password=None)
    except (ValueError, TypeError) as e:
        raise KeyMaterialError(f"Invalid RSA private key: {e}") from e
    if not isinstance(key, RSAPrivateKey):
        raise KeyMaterialError("Private key is not an RSA key")
    return key


# ================= Encryption / Signing =================
def _oaep() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


def encrypt(message: bytes, public_key: RSAPublicKey) -> bytes:
    return public_key.encrypt(message, _oaep())


def decrypt(message: bytes, private_key: RSAPrivateKey) -> bytes:
    try:
        return private_key.decrypt(message, _oaep())
    except ValueError as e:
        raise DecryptionError("RSA-OAEP decryption failed") from e


def sign(message: bytes, private_key: RSAPrivateKey) -> bytes:
    return private_key.sign(message, padding.PKCS1v15(), hashes.SHA256())


def verify(message: bytes, signature: bytes, public_key: RSAPublicKey) -> bool:
    try:
        public_key.verify(signature, message, padding.PKCS1v15(), hashes.SHA256())
        return True
    except InvalidSignature:
        return False
