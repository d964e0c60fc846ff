"""Generic settings key store.

Older servers answer /api/settings/{key}; newer ones the flat
/api/settings?key=... form. Both are tried for every call, and a
setting nobody has saved yet reads as an empty object.
"""

from __future__ import annotations

import logging
from typing import Any, TYPE_CHECKING

from ..dispatch import LENIENT_FALLBACK
from ..errors import ApiError, ErrorKind
from .base import enc

if TYPE_CHECKING:
    from ..client import BackOfficeClient

logger = logging.getLogger(__name__)

SETTINGS_ROOT = "/api/settings"


class SettingsAPI:
    def __init__(self, client: BackOfficeClient):
        self.client = client

    @staticmethod
    def paths(key: str) -> list[str]:
        return [f"{SETTINGS_ROOT}/{enc(key)}", SETTINGS_ROOT]

    async def get(self, key: str) -> Any:
        try:
            return await self.client.get_first(
                self.paths(key), params={"key": key}, continue_on=LENIENT_FALLBACK
            )
        except ApiError as e:
            if e.kind is ErrorKind.NOT_FOUND:
                logger.debug(f"Setting {key!r} not found on any route, using empty value")
                return {}
            raise

    async def save(self, key: str, value: Any) -> Any:
        return await self.client.put_first(
            self.paths(key), {"key": key, "value": value}, continue_on=LENIENT_FALLBACK
        )
