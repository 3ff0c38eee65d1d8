"""Secret store orchestration.

``SecretStore`` owns the in-memory secret document, picks the write backend,
dispatches reads on each entry's method tag and migrates entries left by the
retired Safe Storage facility.

Lifecycle is explicit: construct, ``await initialize(location)``, then use.
Every operation except ``get_settings_path`` and ``is_initialized`` raises
``NotInitializedError`` before that. Cryptographic and I/O failures never
propagate: reads report them through ``SecretLookup``, writes through their
boolean result, and both log the reason.

Security Note:
    Never log plaintext or ciphertext values. Only log key names, methods
    and failure reasons.
"""

from __future__ import annotations

import base64
import inspect
import logging
import pathlib
from collections.abc import Awaitable, Callable
from typing import assert_never

from secure_settings.errors import (
    DecryptionError,
    NotInitializedError,
    PersistenceError,
    ValidationError,
)
from secure_settings.models import (
    EncryptionMethod,
    EntryKind,
    LookupStatus,
    MigrationFailure,
    MigrationResult,
    SecretEntry,
    SecretLookup,
    StoreCapabilities,
)
from secure_settings.secrets.backends import (
    AesGcmBackend,
    EncryptionBackend,
    SodiumBackend,
    load_sodium_backend,
)
from secure_settings.secrets.document import DocumentFile, SecretDocument
from secure_settings.secrets.keys import derive_machine_key
from secure_settings.secrets.legacy import LegacyFacility

logger = logging.getLogger(__name__)

DEFAULT_FILE_NAME = "secure-settings.json"

SodiumLoader = Callable[[bytes], SodiumBackend | None]
LegacyLoader = Callable[[], LegacyFacility | None | Awaitable[LegacyFacility | None]]


def _no_legacy_facility() -> None:
    return None


class SecretStore:
    """Machine-bound encrypted key/value store persisted as one JSON file.

    Parameters
    ----------
    sodium_loader:
        Called with the machine key; returns the libsodium backend or
        ``None`` when it cannot be loaded.
    legacy_loader:
        Returns the Safe Storage facility (sync or async) or ``None``.
        Defaults to no facility.
    key_deriver:
        Returns the 32-byte machine key.
    """

    def __init__(
        self,
        *,
        sodium_loader: SodiumLoader = load_sodium_backend,
        legacy_loader: LegacyLoader = _no_legacy_facility,
        key_deriver: Callable[[], bytes] = derive_machine_key,
    ) -> None:
        self._sodium_loader = sodium_loader
        self._legacy_loader = legacy_loader
        self._key_deriver = key_deriver
        self._reset()

    def _reset(self) -> None:
        self._initialized = False
        self._file: DocumentFile | None = None
        self._document: SecretDocument = {}
        self._sodium: SodiumBackend | None = None
        self._fallback: AesGcmBackend | None = None
        self._legacy: LegacyFacility | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(
        self,
        storage_location: pathlib.Path,
        file_name: str = DEFAULT_FILE_NAME,
    ) -> None:
        """Load backends and the document from *storage_location*.

        *storage_location* is a directory; the document is
        ``storage_location / file_name``. Re-running this discards all
        in-memory state and loads again.
        """
        self._reset()

        key = self._key_deriver()
        try:
            self._sodium = self._sodium_loader(key)
        except Exception:
            logger.warning("libsodium backend could not be loaded", exc_info=True)
            self._sodium = None
        self._fallback = AesGcmBackend(key)

        try:
            facility = self._legacy_loader()
            if inspect.isawaitable(facility):
                facility = await facility
        except Exception:
            logger.warning("Safe Storage facility could not be obtained", exc_info=True)
            facility = None
        self._legacy = facility

        self._file = DocumentFile(pathlib.Path(storage_location) / file_name)
        self._document = self._file.load()
        self._warn_legacy_entries()

        self._initialized = True
        logger.info(
            "Secret store ready: %d entr%s, sodium=%s, legacy=%s",
            len(self._document),
            "y" if len(self._document) == 1 else "ies",
            self._sodium is not None,
            self._legacy is not None,
        )

    def _warn_legacy_entries(self) -> None:
        legacy = self._legacy_key_list()
        if not legacy:
            return
        if self._legacy is None:
            logger.warning(
                "Found %d legacy Safe Storage entr%s that cannot be decrypted here: %s",
                len(legacy), "y" if len(legacy) == 1 else "ies", ", ".join(legacy),
            )
        else:
            logger.warning("Found %d legacy Safe Storage entries; run migrate_to_sodium()", len(legacy))

    def is_initialized(self) -> bool:
        return self._initialized

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitializedError("SecretStore not initialized")

    @property
    def capabilities(self) -> StoreCapabilities:
        self._require_initialized()
        return StoreCapabilities(sodium=self._sodium is not None, legacy=self._legacy is not None)

    def is_encryption_available(self) -> bool:
        self._require_initialized()
        return self._write_backend() is not None

    def get_settings_path(self) -> pathlib.Path | None:
        return self._file.path if self._file is not None else None

    # ------------------------------------------------------------------
    # Backend selection
    # ------------------------------------------------------------------

    def _write_backend(self) -> EncryptionBackend | None:
        return self._sodium or self._fallback

    def _backend_for(self, method: EncryptionMethod) -> EncryptionBackend | None:
        if method is EncryptionMethod.SODIUM:
            return self._sodium
        elif method is EncryptionMethod.CRYPTO:
            return self._fallback
        else:
            assert_never(method)

    def _entry(self, key: str) -> SecretEntry | None:
        entry = self._document.get(key)
        if entry is None or not entry.data:
            return None
        return entry

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist(self) -> bool:
        assert self._file is not None
        try:
            self._file.save(self._document)
        except PersistenceError as exc:
            logger.error("Failed to save secret document: %s", exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def set_secret(self, key: str, value: str) -> bool:
        """Encrypt *value* under *key* and persist the document.

        Raises
        ------
        ValidationError
            If *key* or *value* is not a non-empty string.
        """
        self._require_initialized()
        if not isinstance(key, str) or not key:
            raise ValidationError("key must be a non-empty string")
        if not isinstance(value, str) or not value:
            raise ValidationError("value must be a non-empty string")

        backend = self._write_backend()
        if backend is None:
            logger.error("No encryption backend available for %s", key)
            return False
        try:
            data = backend.encrypt(value)
        except Exception as exc:
            logger.error("Failed to encrypt %s: %s", key, exc)
            return False

        previous = self._document.get(key)
        self._document[key] = SecretEntry.sealed(backend.method, data)
        if not self._persist():
            if previous is None:
                del self._document[key]
            else:
                self._document[key] = previous
            return False
        logger.debug("Stored %s with method=%s", key, backend.method)
        return True

    def lookup_secret(self, key: str) -> SecretLookup:
        """Read *key*, reporting why no plaintext was produced when it fails."""
        self._require_initialized()
        entry = self._entry(key)
        if entry is None:
            return SecretLookup(LookupStatus.NOT_FOUND)

        kind = entry.kind
        if kind is EntryKind.CURRENT:
            return self._open_tagged(key, entry)
        elif kind is EntryKind.LEGACY:
            return self._open_legacy(key, entry)
        elif kind is EntryKind.PLAIN:
            return self._open_plain(key, entry)
        elif kind is EntryKind.UNKNOWN:
            reason = f"unknown encryption method {entry.method!r}"
            logger.warning("Cannot read %s: %s", key, reason)
            return SecretLookup(LookupStatus.BACKEND_UNAVAILABLE, reason=reason)
        else:
            assert_never(kind)

    def _open_tagged(self, key: str, entry: SecretEntry) -> SecretLookup:
        method = entry.encryption_method
        assert method is not None
        backend = self._backend_for(method)
        if backend is None:
            reason = f"{method} backend is not available"
            logger.warning("Cannot read %s: %s", key, reason)
            return SecretLookup(LookupStatus.BACKEND_UNAVAILABLE, reason=reason)
        try:
            return SecretLookup(LookupStatus.FOUND, value=backend.decrypt(entry.data))
        except DecryptionError as exc:
            logger.error("Failed to decrypt %s: %s", key, exc)
            return SecretLookup(LookupStatus.DECRYPT_FAILED, reason=str(exc))

    def _open_legacy(self, key: str, entry: SecretEntry) -> SecretLookup:
        if self._legacy is None:
            reason = "encrypted with Safe Storage, which is not available in this process"
            logger.warning("Cannot read %s: %s", key, reason)
            return SecretLookup(LookupStatus.BACKEND_UNAVAILABLE, reason=reason)
        try:
            return SecretLookup(LookupStatus.FOUND, value=self._legacy_decrypt(entry))
        except Exception as exc:
            logger.error("Failed to decrypt legacy entry %s: %s", key, exc)
            return SecretLookup(LookupStatus.DECRYPT_FAILED, reason=str(exc))

    def _legacy_decrypt(self, entry: SecretEntry) -> str:
        assert self._legacy is not None
        try:
            blob = base64.b64decode(entry.data, validate=True)
        except ValueError as exc:
            raise DecryptionError("legacy blob is not valid base64") from exc
        return self._legacy.decrypt_string(blob)

    def _open_plain(self, key: str, entry: SecretEntry) -> SecretLookup:
        try:
            value = base64.b64decode(entry.data, validate=True).decode("utf-8")
        except ValueError as exc:
            # binascii.Error and UnicodeDecodeError are both ValueErrors
            logger.error("Failed to decode unencrypted entry %s: %s", key, exc)
            return SecretLookup(LookupStatus.DECRYPT_FAILED, reason=str(exc))
        return SecretLookup(LookupStatus.FOUND, value=value)

    def get_secret(self, key: str) -> str | None:
        """Return the plaintext for *key*, or ``None`` if it cannot be produced."""
        return self.lookup_secret(key).value

    def has_secret(self, key: str) -> bool:
        """Whether *key* exists and the backend it needs is loaded."""
        self._require_initialized()
        entry = self._entry(key)
        if entry is None:
            return False

        kind = entry.kind
        if kind is EntryKind.CURRENT:
            method = entry.encryption_method
            assert method is not None
            return self._backend_for(method) is not None
        elif kind is EntryKind.LEGACY:
            return self._legacy is not None
        elif kind is EntryKind.PLAIN:
            return True
        elif kind is EntryKind.UNKNOWN:
            return False
        else:
            assert_never(kind)

    def delete_secret(self, key: str) -> bool:
        """Remove *key* and persist. Returns whether it existed."""
        self._require_initialized()
        if key not in self._document:
            return False
        del self._document[key]
        self._persist()
        return True

    def clear(self) -> bool:
        """Remove every entry and persist. Returns whether the save succeeded."""
        self._require_initialized()
        previous = self._document
        self._document = {}
        if not self._persist():
            self._document = previous
            return False
        return True

    def get_keys(self) -> list[str]:
        """All stored keys, decryptable or not."""
        self._require_initialized()
        return list(self._document)

    # ------------------------------------------------------------------
    # Legacy entries
    # ------------------------------------------------------------------

    def _legacy_key_list(self) -> list[str]:
        return [key for key, entry in self._document.items() if entry.kind is EntryKind.LEGACY]

    def has_legacy_data(self) -> bool:
        self._require_initialized()
        return bool(self._legacy_key_list())

    def get_legacy_keys(self) -> list[str]:
        self._require_initialized()
        return self._legacy_key_list()

    def clear_legacy_data(self) -> list[str]:
        """Drop every legacy entry and persist once. Returns the removed keys.

        When the save fails the entries are restored and nothing is reported
        as removed.
        """
        self._require_initialized()
        removed = {key: self._document[key] for key in self._legacy_key_list()}
        if not removed:
            return []
        for key in removed:
            del self._document[key]
        if not self._persist():
            self._document.update(removed)
            return []
        logger.info("Cleared legacy entries: %s", ", ".join(removed))
        return list(removed)

    def migrate_to_sodium(self) -> MigrationResult:
        """Re-encrypt every legacy entry with libsodium.

        Entries that cannot be decrypted are left untouched and reported in
        ``failed``. The document is saved once, if anything migrated; if that
        save fails the legacy entries are restored and ``migrated`` is empty.
        """
        self._require_initialized()
        if self._sodium is None:
            return MigrationResult(success=False, error="libsodium not available")

        originals: dict[str, SecretEntry] = {}
        result = MigrationResult(success=True)
        for key in self._legacy_key_list():
            if self._legacy is None:
                result.failed.append(MigrationFailure(key, "Safe Storage not available"))
                continue
            entry = self._document[key]
            try:
                plaintext = self._legacy_decrypt(entry)
                data = self._sodium.encrypt(plaintext)
            except Exception as exc:
                logger.warning("Could not migrate %s: %s", key, exc)
                result.failed.append(MigrationFailure(key, str(exc)))
                continue
            originals[key] = entry
            self._document[key] = SecretEntry.sealed(EncryptionMethod.SODIUM, data)
            result.migrated.append(key)

        if result.migrated:
            if not self._persist():
                self._document.update(originals)
                result.success = False
                result.error = "migrated entries could not be saved"
                result.migrated = []
                return result
            logger.info(
                "Migrated %d legacy entr%s to sodium (%d failed)",
                len(result.migrated),
                "y" if len(result.migrated) == 1 else "ies",
                len(result.failed),
            )
        return result
