"""Tests for the sodium and AES-GCM encryption backends."""

from __future__ import annotations

import base64

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from nacl.secret import SecretBox

from secure_settings.errors import DecryptionError
from secure_settings.models import EncryptionMethod
from secure_settings.secrets.backends import (
    AesGcmBackend,
    SodiumBackend,
    decode_urlsafe_nopad,
    load_sodium_backend,
)


def _flip_byte(raw: bytes, index: int) -> bytes:
    flipped = bytearray(raw)
    flipped[index] ^= 0x01
    return bytes(flipped)


# ---------------------------------------------------------------------------
# base64 helpers
# ---------------------------------------------------------------------------

class TestUrlsafeDecode:

    def test_rejects_standard_alphabet_characters(self) -> None:
        with pytest.raises(ValueError):
            decode_urlsafe_nopad("ab+/")

    def test_rejects_padding(self) -> None:
        with pytest.raises(ValueError):
            decode_urlsafe_nopad("YQ==")

    def test_decodes_unpadded(self) -> None:
        assert decode_urlsafe_nopad("YWJj") == b"abc"
        assert decode_urlsafe_nopad("YQ") == b"a"


# ---------------------------------------------------------------------------
# SodiumBackend
# ---------------------------------------------------------------------------

class TestSodiumBackend:

    @pytest.fixture
    def backend(self, machine_key: bytes) -> SodiumBackend:
        return SodiumBackend(machine_key)

    def test_method_tag(self, backend: SodiumBackend) -> None:
        assert backend.method is EncryptionMethod.SODIUM

    def test_round_trip(self, backend: SodiumBackend) -> None:
        assert backend.decrypt(backend.encrypt("sk-abc123")) == "sk-abc123"

    def test_round_trip_unicode(self, backend: SodiumBackend) -> None:
        assert backend.decrypt(backend.encrypt("飞书 token ✓")) == "飞书 token ✓"

    def test_emits_urlsafe_unpadded_alphabet(self, backend: SodiumBackend) -> None:
        for _ in range(20):
            blob = backend.encrypt("x" * 37)
            assert "=" not in blob
            assert "+" not in blob
            assert "/" not in blob

    def test_layout_is_nonce_then_box(self, backend: SodiumBackend, machine_key: bytes) -> None:
        raw = decode_urlsafe_nopad(backend.encrypt("abc"))
        nonce, box = raw[: SecretBox.NONCE_SIZE], raw[SecretBox.NONCE_SIZE :]
        assert SecretBox(machine_key).decrypt(box, nonce) == b"abc"

    def test_fresh_nonce_per_encryption(self, backend: SodiumBackend) -> None:
        assert backend.encrypt("same") != backend.encrypt("same")

    def test_ciphertext_does_not_contain_plaintext(self, backend: SodiumBackend) -> None:
        blob = backend.encrypt("super-secret-value")
        assert "super-secret-value" not in blob
        assert b"super-secret-value" not in decode_urlsafe_nopad(blob)

    def test_decodes_standard_alphabet(self, backend: SodiumBackend) -> None:
        raw = decode_urlsafe_nopad(backend.encrypt("legacy-cli"))
        standard = base64.b64encode(raw).decode("ascii")
        assert backend.decrypt(standard) == "legacy-cli"

    def test_decodes_standard_alphabet_with_special_chars(
        self, backend: SodiumBackend, machine_key: bytes
    ) -> None:
        # Find a nonce whose standard encoding needs '+' or '/' so the
        # url-safe attempt fails and the retry path is exercised.
        box = SecretBox(machine_key)
        for i in range(256):
            nonce = bytes([i]) * SecretBox.NONCE_SIZE
            standard = base64.b64encode(bytes(box.encrypt(b"retry", nonce))).decode("ascii")
            if "+" in standard or "/" in standard:
                break
        else:
            pytest.fail("no nonce produced standard-only characters")
        assert backend.decrypt(standard) == "retry"

    def test_tampered_blob_fails(self, backend: SodiumBackend) -> None:
        raw = decode_urlsafe_nopad(backend.encrypt("abc123"))
        for index in (0, SecretBox.NONCE_SIZE, len(raw) - 1):
            tampered = base64.urlsafe_b64encode(_flip_byte(raw, index)).rstrip(b"=").decode()
            with pytest.raises(DecryptionError):
                backend.decrypt(tampered)

    def test_wrong_key_fails(self, backend: SodiumBackend) -> None:
        other = SodiumBackend(bytes(32))
        with pytest.raises(DecryptionError):
            other.decrypt(backend.encrypt("abc"))

    def test_invalid_base64_fails(self, backend: SodiumBackend) -> None:
        with pytest.raises(DecryptionError):
            backend.decrypt("not base64 at all!")

    def test_non_ascii_blob_fails(self, backend: SodiumBackend) -> None:
        with pytest.raises(DecryptionError):
            backend.decrypt("h\u00e9llo")

    def test_short_blob_fails(self, backend: SodiumBackend) -> None:
        with pytest.raises(DecryptionError):
            backend.decrypt("AAAA")

    def test_rejects_wrong_key_length(self) -> None:
        with pytest.raises(ValueError):
            SodiumBackend(b"short")


class TestLoadSodiumBackend:

    def test_returns_backend_when_available(self, machine_key: bytes) -> None:
        assert isinstance(load_sodium_backend(machine_key), SodiumBackend)

    def test_returns_none_when_pynacl_missing(self, machine_key: bytes, monkeypatch) -> None:
        import builtins

        real_import = builtins.__import__

        def fake_import(name, *args, **kwargs):
            if name.startswith("nacl"):
                raise ImportError("No module named 'nacl'")
            return real_import(name, *args, **kwargs)

        monkeypatch.setattr(builtins, "__import__", fake_import)
        assert load_sodium_backend(machine_key) is None


# ---------------------------------------------------------------------------
# AesGcmBackend
# ---------------------------------------------------------------------------

class TestAesGcmBackend:

    @pytest.fixture
    def backend(self, machine_key: bytes) -> AesGcmBackend:
        return AesGcmBackend(machine_key)

    def test_method_tag(self, backend: AesGcmBackend) -> None:
        assert backend.method is EncryptionMethod.CRYPTO

    def test_round_trip(self, backend: AesGcmBackend) -> None:
        assert backend.decrypt(backend.encrypt("sk-abc123")) == "sk-abc123"

    def test_layout_is_iv_tag_ciphertext(self, backend: AesGcmBackend, machine_key: bytes) -> None:
        raw = base64.b64decode(backend.encrypt("hello"))
        iv, tag, ciphertext = raw[:16], raw[16:32], raw[32:]
        assert len(ciphertext) == len("hello")
        assert AESGCM(machine_key).decrypt(iv, ciphertext + tag, None) == b"hello"

    def test_uses_standard_base64(self, backend: AesGcmBackend) -> None:
        blob = backend.encrypt("a")
        assert base64.b64encode(base64.b64decode(blob, validate=True)).decode() == blob

    def test_tampered_tag_fails(self, backend: AesGcmBackend) -> None:
        raw = base64.b64decode(backend.encrypt("abc123"))
        for index in (0, 16, len(raw) - 1):
            tampered = base64.b64encode(_flip_byte(raw, index)).decode()
            with pytest.raises(DecryptionError):
                backend.decrypt(tampered)

    def test_colon_joined_layout_is_rejected(self, backend: AesGcmBackend) -> None:
        with pytest.raises(DecryptionError):
            backend.decrypt("AAAAAAAAAAAAAAAAAAAAAA==:AAAAAAAAAAAAAAAAAAAAAA==:YWJj")

    def test_non_ascii_blob_fails(self, backend: AesGcmBackend) -> None:
        with pytest.raises(DecryptionError):
            backend.decrypt("h\u00e9llo==")

    def test_short_blob_fails(self, backend: AesGcmBackend) -> None:
        with pytest.raises(DecryptionError):
            backend.decrypt(base64.b64encode(b"tiny").decode())
