"""Encryption backends for tagged secret entries.

Each backend seals a UTF-8 string under the machine key and returns the
base64 text stored in an entry's ``data`` field:

``sodium``
    libsodium ``crypto_secretbox`` (XSalsa20-Poly1305) via PyNaCl.
    Layout: ``nonce(24) || mac(16) || ciphertext``, URL-safe base64 without
    padding. Older producers wrote the standard alphabet, so decoding falls
    back to it.

``crypto``
    AES-256-GCM via ``cryptography``, used only when PyNaCl is missing.
    Layout: ``iv(16) || tag(16) || ciphertext``, standard padded base64.
    This is the only fallback layout read or written; the colon-joined
    ``iv:tag:ciphertext`` variant of other producers is not accepted.
"""

from __future__ import annotations

import base64
import logging
import os
import re
from abc import ABC, abstractmethod

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from secure_settings.errors import DecryptionError
from secure_settings.models import EncryptionMethod
from secure_settings.secrets.keys import KEY_LENGTH

logger = logging.getLogger(__name__)

_URLSAFE_NOPAD = re.compile(r"^[A-Za-z0-9_-]*$")


class EncryptionBackend(ABC):
    """Seals and opens strings for one ``EncryptionMethod``."""

    method: EncryptionMethod

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_LENGTH:
            raise ValueError(f"machine key must be {KEY_LENGTH} bytes, got {len(key)}")
        self._key = key

    @abstractmethod
    def encrypt(self, plaintext: str) -> str:
        """Encrypt *plaintext* and return the encoded blob."""

    @abstractmethod
    def decrypt(self, blob: str) -> str:
        """Decode and open *blob*. Raises ``DecryptionError`` on any failure."""


# ---------------------------------------------------------------------------
# base64 helpers
# ---------------------------------------------------------------------------

def encode_urlsafe_nopad(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def decode_urlsafe_nopad(text: str) -> bytes:
    """Strict decode of the URL-safe, unpadded alphabet."""
    if not _URLSAFE_NOPAD.match(text) or len(text) % 4 == 1:
        raise ValueError("not url-safe unpadded base64")
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def decode_standard(text: str) -> bytes:
    """Strict decode of the standard, padded alphabet."""
    try:
        return base64.b64decode(text, validate=True)
    except ValueError as exc:
        raise ValueError("not standard base64") from exc


# ---------------------------------------------------------------------------
# libsodium secretbox
# ---------------------------------------------------------------------------

class SodiumBackend(EncryptionBackend):
    method = EncryptionMethod.SODIUM

    def __init__(self, key: bytes) -> None:
        super().__init__(key)
        from nacl.secret import SecretBox

        self._box = SecretBox(key)
        self._nonce_size = SecretBox.NONCE_SIZE
        self._mac_size = SecretBox.MACBYTES

    def encrypt(self, plaintext: str) -> str:
        import nacl.utils

        nonce = nacl.utils.random(self._nonce_size)
        sealed = self._box.encrypt(plaintext.encode("utf-8"), nonce)
        # EncryptedMessage already is nonce || mac || ciphertext
        return encode_urlsafe_nopad(bytes(sealed))

    def _decode(self, blob: str) -> bytes:
        try:
            return decode_urlsafe_nopad(blob)
        except ValueError:
            pass
        try:
            return decode_standard(blob)
        except ValueError as exc:
            raise DecryptionError("blob is not valid base64 in either alphabet") from exc

    def decrypt(self, blob: str) -> str:
        from nacl.exceptions import CryptoError

        combined = self._decode(blob)
        if len(combined) < self._nonce_size + self._mac_size:
            raise DecryptionError(f"blob too short: {len(combined)} bytes")
        nonce = combined[: self._nonce_size]
        ciphertext = combined[self._nonce_size :]
        try:
            plaintext = self._box.decrypt(ciphertext, nonce)
        except CryptoError as exc:
            raise DecryptionError("authentication failed") from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionError("plaintext is not valid UTF-8") from exc


def load_sodium_backend(key: bytes) -> SodiumBackend | None:
    """Return a ``SodiumBackend`` or ``None`` when PyNaCl cannot be loaded."""
    try:
        import nacl.secret  # noqa: F401
    except ImportError:
        logger.warning("PyNaCl is not installed; new secrets will use AES-256-GCM")
        return None
    try:
        return SodiumBackend(key)
    except Exception:
        logger.warning("libsodium failed to initialize", exc_info=True)
        return None


# ---------------------------------------------------------------------------
# AES-256-GCM fallback
# ---------------------------------------------------------------------------

class AesGcmBackend(EncryptionBackend):
    method = EncryptionMethod.CRYPTO

    IV_SIZE = 16
    TAG_SIZE = 16

    def __init__(self, key: bytes) -> None:
        super().__init__(key)
        self._aes = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(self.IV_SIZE)
        sealed = self._aes.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[: -self.TAG_SIZE], sealed[-self.TAG_SIZE :]
        return base64.b64encode(iv + tag + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> str:
        try:
            raw = decode_standard(blob)
        except ValueError as exc:
            raise DecryptionError("blob is not valid base64") from exc
        if len(raw) < self.IV_SIZE + self.TAG_SIZE:
            raise DecryptionError(f"blob too short: {len(raw)} bytes")
        iv = raw[: self.IV_SIZE]
        tag = raw[self.IV_SIZE : self.IV_SIZE + self.TAG_SIZE]
        ciphertext = raw[self.IV_SIZE + self.TAG_SIZE :]
        try:
            plaintext = self._aes.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as exc:
            raise DecryptionError("authentication failed") from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionError("plaintext is not valid UTF-8") from exc
