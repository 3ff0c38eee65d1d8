"""Encrypted secret storage: key derivation, backends, persistence, orchestration."""

from .store import SecretStore
from .legacy import LegacyFacility, SafeStorageFacility, load_legacy_facility
from .keys import MachineAttributes, derive_machine_key

__all__ = [
    "SecretStore",
    "LegacyFacility",
    "SafeStorageFacility",
    "load_legacy_facility",
    "MachineAttributes",
    "derive_machine_key",
]
