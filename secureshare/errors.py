"""
SecureShare - Error Types

Every failure the package raises on purpose is one of these:

- InvalidInputKind: bad argument shape (caught before any crypto runs)
- AuthenticationFailure: wrong key OR tampered data (AEAD can't tell which)
- StorageFailure: the key-value store could not read or write

"Not a recipient" is NOT an error - unwrap returns None for that case.
"""


class SecureShareError(Exception):
    """Base class for all SecureShare errors."""


class InvalidInputKind(SecureShareError, TypeError):
    """An argument has a type/shape the operation does not accept."""


class AuthenticationFailure(SecureShareError):
    """Integrity check failed: wrong key, wrong password or corrupted data."""


class StorageFailure(SecureShareError):
    """The persistent key-value store failed to read or write."""
