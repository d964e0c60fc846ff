"""Bearer credential resolution from client storage."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from .storage import Storage, StorageScope, scoped

logger = logging.getLogger(__name__)

# Priority order, first non-empty value wins
TOKEN_KEYS: tuple[str, ...] = ("token", "authToken", "accessToken", "access_token", "jwt")
PRIMARY_TOKEN_KEY = TOKEN_KEYS[0]

_SCHEME_PREFIX = re.compile(r"^bearer(?:\s+|$)", re.IGNORECASE)

# Empty dict singleton - avoid allocation on hot path
_EMPTY_HEADERS: dict[str, str] = {}


@dataclass(frozen=True)
class Credential:
    """An opaque bearer value and the store and key it came from."""
    value: str
    key: str
    scope: StorageScope = "storage"

    def __repr__(self) -> str:
        return f"Credential(key={self.key!r}, scope={self.scope!r}, value=<redacted>)"


def strip_scheme(value: str) -> str:
    """Strip a leading "Bearer " (any case) and surrounding whitespace."""
    return _SCHEME_PREFIX.sub("", value.strip()).strip()


@dataclass
class CredentialResolver:
    """
    Resolve the active bearer credential.

    Each key in TOKEN_KEYS is checked in the persistent store and then
    the session store. A missing credential is not an error: the request
    simply goes out unauthenticated.
    """
    storage: Storage
    session: Storage | None = None

    # Cache for the Authorization header (token doesn't change often)
    _header_cache: dict[str, str] = field(default_factory=dict, init=False, repr=False)
    _header_cache_token: str | None = field(default=None, init=False, repr=False)

    def _stores(self) -> list[tuple[StorageScope, Storage]]:
        return scoped(self.storage, self.session)

    def resolve(self) -> Credential | None:
        for key in TOKEN_KEYS:
            for scope, store in self._stores():
                raw = store.get(key)
                if not raw:
                    continue
                value = strip_scheme(raw)
                if value:
                    return Credential(value=value, key=key, scope=scope)
        return None

    def authorization_header(self) -> dict[str, str]:
        """{"Authorization": "Bearer <token>"} or an empty dict."""
        credential = self.resolve()
        if credential is None:
            return _EMPTY_HEADERS

        # Cache hit - same token as before
        if credential.value == self._header_cache_token and self._header_cache:
            return self._header_cache

        self._header_cache = {"Authorization": f"Bearer {credential.value}"}
        self._header_cache_token = credential.value
        return self._header_cache

    def store(self, value: str) -> None:
        """Install a credential under the primary key."""
        self.storage.set(PRIMARY_TOKEN_KEY, strip_scheme(value))

    def clear(self) -> None:
        """Remove every credential key from both stores."""
        for _, store in self._stores():
            for key in TOKEN_KEYS:
                store.remove(key)
        self._header_cache = {}
        self._header_cache_token = None
        logger.debug("Cleared stored credentials")
