"""
Classifier credential provider.

Construct one :class:`CredentialProvider` at startup and hand it to the
classifier. ``get()`` memoizes a single in-flight load: concurrent callers await
the same future instead of each hitting the settings store. A failed or empty
load is not cached, so the next call retries; ``reset()`` forgets a loaded key
(e.g. after the user edits it in settings).
"""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

KeyLoader = Callable[[], Awaitable["str | None"]]


class CredentialProvider:
    """Lazily loads and caches one API key."""

    def __init__(self, loader: KeyLoader):
        self._loader = loader
        self._pending: asyncio.Future | None = None
        self._key: str | None = None

    async def get(self) -> str | None:
        if self._key:
            return self._key
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._load())
        pending = self._pending
        try:
            key = await asyncio.shield(pending)
        finally:
            if self._pending is pending and pending.done():
                self._pending = None
        return key

    async def _load(self) -> str | None:
        logger.info("Loading classifier API key...")
        try:
            key = await self._loader()
        except Exception as exc:
            logger.error("Error loading classifier API key: %s", exc, exc_info=True)
            return None
        key = (key or "").strip() or None
        if key:
            self._key = key
            logger.info("Classifier API key loaded.")
        else:
            logger.warning("Classifier API key not found.")
        return key

    def reset(self) -> None:
        self._key = None
        self._pending = None

    @property
    def is_loaded(self) -> bool:
        return self._key is not None


def env_key_loader(var_name: str) -> KeyLoader:
    """Loader reading the key from an environment variable (``.env`` already applied by config)."""
    async def _load() -> str | None:
        return os.getenv(var_name)
    return _load


def settings_key_loader(settings_store, setting_name: str) -> KeyLoader:
    """Loader reading the key from the global settings table."""
    async def _load() -> str | None:
        return await settings_store.get_setting(setting_name)
    return _load


def chained_loader(*loaders: KeyLoader) -> KeyLoader:
    """First loader that yields a non-empty key wins."""
    async def _load() -> str | None:
        for loader in loaders:
            key = await loader()
            if key and key.strip():
                return key
        return None
    return _load


def key_sources(provider_name: str) -> tuple[str, str]:
    """(env var, settings key) holding the API key for *provider_name*."""
    from notelog import config

    sources = {
        "gemini": (config.GEMINI_API_KEY_ENV, config.API_KEY_SETTING_NAME),
        "openai": (config.OPENAI_API_KEY_ENV, config.OPENAI_API_KEY_SETTING_NAME),
    }
    try:
        return sources[provider_name]
    except KeyError:
        raise ValueError(f"No API key source known for LLM provider: {provider_name!r}") from None


def default_credential_provider(provider_name: str | None = None, settings_store=None) -> CredentialProvider:
    """Env var first, then the settings database, for the configured (or given) provider."""
    from notelog.pipeline.store import get_settings_store
    from notelog.services.llm_provider import resolve_provider_name

    name = (provider_name or resolve_provider_name()).lower().strip()
    env_var, setting_name = key_sources(name)
    logger.debug("Classifier API key for %s: env %s, setting %s", name, env_var, setting_name)
    return CredentialProvider(
        chained_loader(
            env_key_loader(env_var),
            settings_key_loader(settings_store or get_settings_store(), setting_name),
        )
    )
