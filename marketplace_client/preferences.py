from __future__ import annotations

import logging

from marketplace_client.config import APP_LANG_KEY, APP_THEME_KEY
from marketplace_client.storage import SecureKeyValueStore

logger = logging.getLogger(__name__)

THEME_MODES = ("light", "dark", "system")
DEFAULT_LANGUAGE = "en"
DEFAULT_THEME = "system"


class Preferences:
    def __init__(self, store: SecureKeyValueStore):
        self._store = store

    async def get_language(self) -> str:
        value = await self._store.get(APP_LANG_KEY)
        return value.strip() if value and value.strip() else DEFAULT_LANGUAGE

    async def set_language(self, code: str) -> bool:
        code = code.strip()
        if not code:
            raise ValueError("Language code is required")
        return await self._store.save(APP_LANG_KEY, code)

    async def get_theme(self) -> str:
        value = await self._store.get(APP_THEME_KEY)
        if value not in THEME_MODES:
            if value is not None:
                logger.warning("Ignoring unknown stored theme %r", value)
            return DEFAULT_THEME
        return value

    async def set_theme(self, mode: str) -> bool:
        if mode not in THEME_MODES:
            raise ValueError(f"Theme must be one of: {', '.join(THEME_MODES)}")
        return await self._store.save(APP_THEME_KEY, mode)
