"""Machine key derivation.

The store has no passphrase: its symmetric key is a SHA-256 digest over
attributes of the host and the current user, so any process run by the same
user on the same machine recomputes the same key, and a copied document is
useless elsewhere.

Attribute spelling follows the companion desktop and CLI producers of the
same document (``platform`` as ``linux``/``darwin``/``win32``, architecture
as ``x64``/``arm64``/...), otherwise their entries would not decrypt here.
"""

from __future__ import annotations

import hashlib
import os
import platform
import socket
import sys
from dataclasses import dataclass
from pathlib import Path

KEY_LENGTH = 32

_DEFAULT_TOKEN = "default"

_ARCH_ALIASES = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "ia32",
    "i686": "ia32",
    "x86": "ia32",
    "armv7l": "arm",
    "armv6l": "arm",
    "ppc64le": "ppc64",
    "s390x": "s390x",
}


def _normalize_arch(machine: str) -> str:
    machine = machine.lower()
    return _ARCH_ALIASES.get(machine, machine)


def _safe_hostname() -> str:
    try:
        return socket.gethostname()
    except OSError:
        return ""


def _safe_home() -> str:
    try:
        return str(Path.home())
    except RuntimeError:
        return ""


@dataclass(frozen=True)
class MachineAttributes:
    """The host/user tuple the machine key is derived from."""

    hostname: str
    home_dir: str
    platform: str
    arch: str
    user: str

    @classmethod
    def collect(cls) -> MachineAttributes:
        """Read the attributes of the running host and user."""
        return cls(
            hostname=_safe_hostname(),
            home_dir=_safe_home(),
            platform=sys.platform,
            arch=_normalize_arch(platform.machine()),
            user=os.environ.get("USER") or os.environ.get("USERNAME") or "",
        )

    def joined(self) -> str:
        parts = (self.hostname, self.home_dir, self.platform, self.arch, self.user)
        return ":".join(part or _DEFAULT_TOKEN for part in parts)


def derive_machine_key(attributes: MachineAttributes | None = None) -> bytes:
    """Return the 32-byte machine key for *attributes* (default: this host)."""
    attrs = attributes if attributes is not None else MachineAttributes.collect()
    return hashlib.sha256(attrs.joined().encode("utf-8")).digest()
