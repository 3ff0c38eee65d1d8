"""Integration tests for building the owned store context."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from secure_settings.config import Settings
from secure_settings.context import create_context, create_secret_store


def _settings(tmp_path: Path, **overrides) -> Settings:
    data = {"store": {"data_dir": str(tmp_path / "data")}, "legacy": {"enabled": False}}
    data.update(overrides)
    return Settings(**data)


class TestCreateContext:

    @pytest.mark.asyncio
    async def test_context_store_is_ready(self, tmp_path: Path) -> None:
        settings = _settings(tmp_path)
        ctx = await create_context(settings=settings)
        assert ctx.settings is settings
        assert ctx.store.is_initialized() is True
        assert ctx.store.get_settings_path() == tmp_path / "data" / "secure-settings.json"
        assert ctx.store.capabilities.legacy is False

    @pytest.mark.asyncio
    async def test_context_from_config_file(self, tmp_path: Path) -> None:
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump({
            "store": {"data_dir": str(tmp_path / "data"), "file_name": "vault.json"},
            "legacy": {"enabled": False},
        }))
        ctx = await create_context(config_path=config_path)
        assert ctx.store.set_secret("k", "v") is True
        assert (tmp_path / "data" / "vault.json").is_file()

    @pytest.mark.asyncio
    async def test_sodium_disabled_uses_fallback(self, tmp_path: Path) -> None:
        ctx = await create_context(settings=_settings(tmp_path, sodium={"enabled": False}))
        assert ctx.store.capabilities.sodium is False
        assert ctx.store.is_encryption_available() is True
        ctx.store.set_secret("k", "v")
        assert ctx.store.get_secret("k") == "v"

    @pytest.mark.asyncio
    async def test_legacy_loader_receives_settings(self, tmp_path: Path, facility) -> None:
        settings = _settings(tmp_path, legacy={"enabled": True})

        async def fake_loader(received: Settings):
            assert received is settings
            return facility

        with patch("secure_settings.context.load_legacy_facility", fake_loader):
            store = create_secret_store(settings)
        await store.initialize(settings.data_dir())
        assert store.capabilities.legacy is True

    @pytest.mark.asyncio
    async def test_secrets_survive_new_context(self, tmp_path: Path) -> None:
        first = await create_context(settings=_settings(tmp_path))
        first.store.set_secret("token", "abc123")
        second = await create_context(settings=_settings(tmp_path))
        assert second.store.get_secret("token") == "abc123"
