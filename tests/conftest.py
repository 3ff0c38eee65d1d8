"""Shared test fixtures for secure-settings tests."""

from __future__ import annotations

import base64
import pathlib

import pytest
import pytest_asyncio

from secure_settings.secrets.legacy import SafeStorageFacility
from secure_settings.secrets.store import SecretStore

TEST_KEY = bytes(range(32))


def _test_key() -> bytes:
    return TEST_KEY


def _no_sodium(key: bytes) -> None:
    return None


@pytest.fixture
def machine_key() -> bytes:
    return TEST_KEY


@pytest.fixture
def facility() -> SafeStorageFacility:
    return SafeStorageFacility({"v10": "peanuts"}, iterations=1)


@pytest.fixture
def data_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    return tmp_path / "userdata"


@pytest_asyncio.fixture
async def store(data_dir: pathlib.Path) -> SecretStore:
    """Initialized store with libsodium and no legacy facility."""
    s = SecretStore(key_deriver=_test_key)
    await s.initialize(data_dir)
    return s


@pytest_asyncio.fixture
async def fallback_store(data_dir: pathlib.Path) -> SecretStore:
    """Initialized store running without libsodium."""
    s = SecretStore(key_deriver=_test_key, sodium_loader=_no_sodium)
    await s.initialize(data_dir)
    return s


@pytest.fixture
def make_store(data_dir: pathlib.Path):
    """Factory building initialized stores over the shared data dir."""

    async def _make(*, sodium: bool = True, legacy: SafeStorageFacility | None = None) -> SecretStore:
        kwargs = {"key_deriver": _test_key}
        if not sodium:
            kwargs["sodium_loader"] = _no_sodium
        if legacy is not None:
            kwargs["legacy_loader"] = lambda: legacy
        s = SecretStore(**kwargs)
        await s.initialize(data_dir)
        return s

    return _make


@pytest.fixture
def legacy_data():
    """Encode a plaintext the way the retired desktop app stored it."""

    def _encode(facility: SafeStorageFacility, plaintext: str) -> str:
        return base64.b64encode(facility.encrypt_string(plaintext)).decode("ascii")

    return _encode
