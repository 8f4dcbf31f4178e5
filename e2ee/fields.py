"""
Field-level encryption of API records.

Records are JSON-like trees (dicts, lists, scalars, datetimes). Every value
stored under an allow-listed field name is encrypted or decrypted wherever
it appears; everything else is walked to arbitrary depth and left as is.
"""

import json
import logging
from collections.abc import Mapping
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional

from . import symmetric
from .exceptions import DecryptionError, FieldDecryptError
from .symmetric import ResourceKey

logger = logging.getLogger(__name__)

ENCRYPTED_PROPERTIES = frozenset({
    "name",
    "title",
    "description",
    "hex",
    "text",
    "payload",
    "encryptedMetadata",
    "label",
    "color",
    "priority",
    "body",
    "token",
})

# Serialized to JSON before encryption, parsed after decryption
JSON_PROPERTIES = frozenset({"payload", "encryptedMetadata"})

# Re-hydrated to datetimes when decrypting
DATE_PROPERTIES = frozenset({
    "createdAt",
    "updatedAt",
    "completedAt",
    "startAt",
    "endAt",
    "archivedAt",
    "recursNext",
})

# Dates re-hydrated on every backend response
RESPONSE_DATE_PROPERTIES = DATE_PROPERTIES | {"trialEnd"}

Transform = Callable[[str], str]
ErrorHandler = Callable[[FieldDecryptError], None]


def is_primitive(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool, date))


def json_default(value: Any) -> Any:
    """json.dumps hook: datetimes become ISO-8601 strings (UTC with 'Z')."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
            return value.isoformat(timespec="milliseconds") + "Z"
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def parse_date(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing 'Z'."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def rehydrate_dates(data: Any, names: frozenset[str] = RESPONSE_DATE_PROPERTIES) -> Any:
    """Turn ISO strings stored under date field names into datetimes, recursively."""
    if isinstance(data, list):
        return [rehydrate_dates(item, names) for item in data]
    if isinstance(data, Mapping):
        return {
            key: _maybe_date(value) if key in names else rehydrate_dates(value, names)
            for key, value in data.items()
        }
    return data


def _maybe_date(value: Any) -> Any:
    if not isinstance(value, str) or not value:
        return value
    try:
        return parse_date(value)
    except ValueError:
        logger.debug(f"Leaving unparseable date value as string: {value!r}")
        return value


def _to_plaintext(name: str, value: Any) -> str:
    if name in JSON_PROPERTIES:
        return json.dumps(value, default=json_default, separators=(",", ":"))
    if isinstance(value, str):
        return value
    if isinstance(value, (bool, int, float)):
        return json.dumps(value)
    raise TypeError(f"Cannot encrypt property {name!r} of type {type(value).__name__}")


def _decrypt_field(
    name: str, value: Any, decrypt: Transform, on_error: Optional[ErrorHandler]
) -> Any:
    try:
        if not isinstance(value, str):
            raise DecryptionError(f"Expected an encrypted string, got {type(value).__name__}")
        plaintext = decrypt(value)
        if name in JSON_PROPERTIES:
            return json.loads(plaintext)
        return plaintext
    except (DecryptionError, ValueError) as e:
        error = FieldDecryptError(name, e)
        logger.warning(str(error))
        if on_error:
            on_error(error)
        return value


def recursively_apply(
    data: Any,
    *,
    encrypt: Optional[Transform] = None,
    decrypt: Optional[Transform] = None,
    on_error: Optional[ErrorHandler] = None,
) -> Any:
    """
    Return a copy of `data` with every allow-listed field transformed.

    Args:
        data: Record tree to walk
        encrypt: Plaintext -> ciphertext function, applied to encrypted fields
        decrypt: Ciphertext -> plaintext function, applied to encrypted fields
        on_error: Called with each FieldDecryptError; the field keeps its raw value

    Returns:
        A new tree; the input is not modified
    """
    if data is None:
        return None
    if is_primitive(data):
        return data
    if isinstance(data, (list, tuple)):
        return [
            recursively_apply(item, encrypt=encrypt, decrypt=decrypt, on_error=on_error)
            for item in data
        ]
    if not isinstance(data, Mapping):
        raise TypeError(f"Unsupported value in record: {type(data).__name__}")

    result = {}
    for name, value in data.items():
        if name in ENCRYPTED_PROPERTIES and value is not None:
            if encrypt:
                value = encrypt(_to_plaintext(name, value))
            if decrypt and value:
                value = _decrypt_field(name, value, decrypt, on_error)
        else:
            value = recursively_apply(value, encrypt=encrypt, decrypt=decrypt, on_error=on_error)
            if decrypt and name in DATE_PROPERTIES:
                value = _maybe_date(value)
        result[name] = value
    return result


def encrypt_fields(data: Any, key: ResourceKey) -> Any:
    """Encrypt every allow-listed field of a record with a resource key."""
    return recursively_apply(
        data,
        encrypt=lambda plaintext: symmetric.encrypt(plaintext.encode("utf-8"), key),
    )


def decrypt_fields(data: Any, key: ResourceKey, on_error: Optional[ErrorHandler] = None) -> Any:
    """Decrypt every allow-listed field of a record; failed fields keep their raw value."""
    return recursively_apply(
        data,
        decrypt=lambda ciphertext: symmetric.decrypt(ciphertext, key).decode("utf-8"),
        on_error=on_error,
    )
