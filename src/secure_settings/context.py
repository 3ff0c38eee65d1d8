"""Owned store context.

One ``StoreContext`` is created at startup and handed to every caller that
needs secrets, instead of a module-level singleton.
"""

from __future__ import annotations

import functools
import logging
import pathlib
from dataclasses import dataclass

from secure_settings.config import Settings, load_settings
from secure_settings.secrets.backends import load_sodium_backend
from secure_settings.secrets.legacy import load_legacy_facility
from secure_settings.secrets.store import SecretStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreContext:
    settings: Settings
    store: SecretStore


def _sodium_disabled(key: bytes) -> None:
    logger.info("libsodium disabled by configuration")
    return None


def create_secret_store(settings: Settings) -> SecretStore:
    """Build an uninitialized store wired to the configured backends."""
    sodium_loader = load_sodium_backend if settings.sodium.enabled else _sodium_disabled
    return SecretStore(
        sodium_loader=sodium_loader,
        legacy_loader=functools.partial(load_legacy_facility, settings),
    )


async def create_context(
    config_path: pathlib.Path | None = None,
    settings: Settings | None = None,
) -> StoreContext:
    """Load settings, build the store and wait for it to initialize."""
    settings = settings if settings is not None else load_settings(config_path)
    store = create_secret_store(settings)
    await store.initialize(settings.data_dir(), settings.store.file_name)
    return StoreContext(settings=settings, store=store)
