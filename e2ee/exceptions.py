"""
Error types raised by the end-to-end encryption layer.

Key and wrap errors are fatal to the operation that triggered them.
Field decrypt errors are the only kind the field engine absorbs.
"""


class E2EEError(Exception):
    """Base class for all errors raised by this package."""


class KeyMaterialError(E2EEError):
    """Missing or invalid seed/mnemonic/key, or a private operation on a write-only key."""


class WrapError(E2EEError):
    """A wrapped key could not be recovered."""


class DecryptionError(E2EEError):
    """Ciphertext is malformed or does not authenticate under the given key."""


class FieldDecryptError(DecryptionError):
    """A single record field failed to decrypt."""

    def __init__(self, field: str, cause: Exception):
        self.field = field
        self.cause = cause
        super().__init__(f"Failed to decrypt property {field!r}: {cause}")


class TransportError(E2EEError):
    """The backend answered with an error status or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class MigrationStepError(E2EEError):
    """A migration step failed; the checkpoint was not advanced."""

    def __init__(self, index: int, cause: Exception):
        self.index = index
        self.cause = cause
        super().__init__(f"Migration {index} failed: {cause}")


class UnsupportedDerivationError(KeyMaterialError):
    """The requested key derivation is not available in this client."""
