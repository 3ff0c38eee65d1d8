"""Domain models for the secret store.

``SecretEntry`` mirrors one value of the persisted JSON document. The result
types keep apart the reasons a lookup or migration did not produce plaintext,
which the boolean/``None`` convenience API collapses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel, ConfigDict


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class EncryptionMethod(StrEnum):
    """Method tag written on every entry produced by a current write path."""

    SODIUM = "sodium"
    CRYPTO = "crypto"


_KNOWN_METHODS = frozenset(m.value for m in EncryptionMethod)


class EntryKind(StrEnum):
    CURRENT = "current"  # tagged with a known method
    UNKNOWN = "unknown"  # tagged with a method this version cannot read
    LEGACY = "legacy"  # encrypted by the retired platform facility
    PLAIN = "plain"  # base64-wrapped, never encrypted


class LookupStatus(StrEnum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    DECRYPT_FAILED = "decrypt_failed"
    BACKEND_UNAVAILABLE = "backend_unavailable"


# ---------------------------------------------------------------------------
# Persisted entry
# ---------------------------------------------------------------------------

class SecretEntry(BaseModel):
    """One value of the secret document.

    ``method`` is kept as a plain string so entries written by a newer
    version with an unknown method survive a load/save cycle untouched.
    """

    model_config = ConfigDict(extra="allow")

    encrypted: bool | None = None
    method: str | None = None
    data: str = ""

    @property
    def kind(self) -> EntryKind:
        if self.method:
            if self.method in _KNOWN_METHODS:
                return EntryKind.CURRENT
            return EntryKind.UNKNOWN
        if self.encrypted:
            return EntryKind.LEGACY
        return EntryKind.PLAIN

    @property
    def encryption_method(self) -> EncryptionMethod | None:
        if self.kind is EntryKind.CURRENT:
            return EncryptionMethod(self.method)
        return None

    @classmethod
    def sealed(cls, method: EncryptionMethod, data: str) -> SecretEntry:
        return cls(encrypted=True, method=method.value, data=data)

    def to_document(self) -> dict[str, object]:
        return self.model_dump(exclude_none=True)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SecretLookup:
    """Outcome of reading one key. ``value`` is set only when FOUND."""

    status: LookupStatus
    value: str | None = None
    reason: str | None = None

    @property
    def found(self) -> bool:
        return self.status is LookupStatus.FOUND


@dataclass(frozen=True)
class MigrationFailure:
    key: str
    reason: str


@dataclass
class MigrationResult:
    """Accounting for one ``migrate_to_sodium`` run."""

    success: bool
    migrated: list[str] = field(default_factory=list)
    failed: list[MigrationFailure] = field(default_factory=list)
    error: str | None = None


@dataclass(frozen=True)
class StoreCapabilities:
    """Which optional backends were obtained at initialization."""

    sodium: bool
    legacy: bool
