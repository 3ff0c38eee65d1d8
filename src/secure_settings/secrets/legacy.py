"""Retired platform secure-storage facility.

Entries tagged ``encrypted`` without a ``method`` were written by the host
desktop application's Safe Storage API, which wraps Chromium's OSCrypt
format::

    b"v10" | b"v11"  ||  AES-128-CBC(PKCS#7, iv=16 spaces)

with the AES key derived as PBKDF2-HMAC-SHA1(password, b"saltysalt", 16 bytes).
The password lives in the macOS Keychain (1003 iterations); on Linux ``v11``
uses the secret-service password and ``v10`` the fixed ``peanuts`` password
(1 iteration). Windows stored these entries with DPAPI, which is not supported.

The store only reads this format, plus re-encrypting during migration.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from secure_settings.errors import DecryptionError
from secure_settings.secrets.keychain import MacKeychain

if TYPE_CHECKING:
    from secure_settings.config import Settings

logger = logging.getLogger(__name__)

_SALT = b"saltysalt"
_IV = b" " * 16
_KEY_LENGTH = 16
_PREFIX_LENGTH = 3
_MACOS_ITERATIONS = 1003
_LINUX_ITERATIONS = 1
_LINUX_BASIC_PASSWORD = "peanuts"


class LegacyFacility(ABC):
    """Platform string encryption as exposed by the host application."""

    @abstractmethod
    def encrypt_string(self, plaintext: str) -> bytes:
        """Encrypt *plaintext* into an opaque platform blob."""

    @abstractmethod
    def decrypt_string(self, blob: bytes) -> str:
        """Decrypt a blob produced by :meth:`encrypt_string`."""


def _derive_key(password: str, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA1(),
        length=_KEY_LENGTH,
        salt=_SALT,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


class SafeStorageFacility(LegacyFacility):
    """OSCrypt-compatible implementation of the Safe Storage facility.

    Parameters
    ----------
    passwords:
        Mapping of version prefix (``"v10"``, ``"v11"``) to the password
        the key for that version is derived from.
    iterations:
        PBKDF2 iteration count for this platform.
    """

    def __init__(self, passwords: Mapping[str, str], iterations: int) -> None:
        if not passwords:
            raise ValueError("at least one Safe Storage password is required")
        self._keys = {
            version.encode("ascii"): _derive_key(password, iterations)
            for version, password in passwords.items()
        }
        # Newest version wins for writes
        self._write_version = max(self._keys)

    @property
    def versions(self) -> list[str]:
        return sorted(v.decode("ascii") for v in self._keys)

    def encrypt_string(self, plaintext: str) -> bytes:
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._keys[self._write_version]), modes.CBC(_IV)).encryptor()
        return self._write_version + encryptor.update(padded) + encryptor.finalize()

    def decrypt_string(self, blob: bytes) -> str:
        version, body = blob[:_PREFIX_LENGTH], blob[_PREFIX_LENGTH:]
        key = self._keys.get(version)
        if key is None:
            raise DecryptionError(f"unsupported Safe Storage version {version!r}")
        if not body or len(body) % 16:
            raise DecryptionError("Safe Storage payload is not block aligned")
        decryptor = Cipher(algorithms.AES(key), modes.CBC(_IV)).decryptor()
        padded = decryptor.update(body) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        try:
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            # Wrong password shows up as bad padding or garbage bytes
            raise DecryptionError("Safe Storage payload did not decrypt") from exc


# ---------------------------------------------------------------------------
# Facility discovery
# ---------------------------------------------------------------------------

def _keyring_password(service: str, account: str) -> str | None:
    import keyring
    from keyring.errors import KeyringError

    try:
        return keyring.get_password(service, account)
    except KeyringError as exc:
        logger.info("Secret service unavailable: %s", exc)
        return None


async def load_legacy_facility(
    settings: Settings,
    keychain: MacKeychain | None = None,
) -> LegacyFacility | None:
    """Obtain the Safe Storage facility for this platform, or ``None``."""
    if not settings.legacy.enabled:
        return None

    if sys.platform == "darwin":
        keychain = keychain or MacKeychain()
        password = await keychain.find_password(
            settings.legacy_service(), settings.legacy.account,
        )
        if password is None:
            logger.info("Safe Storage password not found in Keychain")
            return None
        return SafeStorageFacility({"v10": password}, iterations=_MACOS_ITERATIONS)

    if sys.platform.startswith("linux"):
        passwords = {"v10": _LINUX_BASIC_PASSWORD}
        secret = await asyncio.to_thread(
            _keyring_password, settings.legacy_service(), settings.legacy_account(),
        )
        if secret:
            passwords["v11"] = secret
        else:
            logger.info("No secret-service password; only v10 Safe Storage entries are readable")
        return SafeStorageFacility(passwords, iterations=_LINUX_ITERATIONS)

    logger.info("Safe Storage facility is not supported on %s", sys.platform)
    return None
