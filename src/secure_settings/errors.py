"""Exception hierarchy for the secret store.

Only ``ValidationError`` and ``NotInitializedError`` escape the public store
API. The remaining types are raised by backends and the persistence layer and
converted to result values by ``SecretStore``.
"""

from __future__ import annotations


class SecureSettingsError(Exception):
    """Base class for all secure-settings errors."""


class ValidationError(SecureSettingsError, ValueError):
    """A caller supplied an invalid key or value."""


class NotInitializedError(SecureSettingsError, RuntimeError):
    """An operation was issued before ``SecretStore.initialize`` completed."""


class DecryptionError(SecureSettingsError):
    """A blob failed authentication or could not be decoded."""


class PersistenceError(SecureSettingsError):
    """The secret document could not be written to disk."""
