"""Client configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# Config file search paths (in order of precedence, last wins)
CONFIG_SEARCH_PATHS = [
    Path.home() / ".backoffice" / "client.yaml",  # User-level defaults
    Path(".backoffice.yaml"),  # Project-level overrides
]

DEFAULT_API_BASE_URL = "http://localhost:8080/api"

# Values of the default tenant setting that mean "no tenant"
NO_TENANT_SENTINELS = frozenset({"", "none", "null"})


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() == "true"


@dataclass
class ClientConfig:
    """
    Configuration for the back-office API client.

    Precedence (lowest to highest):
    1. Defaults
    2. ~/.backoffice/client.yaml
    3. .backoffice.yaml (project root)
    4. Environment variables (BACKOFFICE_*)
    5. Constructor arguments
    """
    # API base URL (trailing slashes are ignored)
    api_base_url: str = field(
        default_factory=lambda: os.environ.get("BACKOFFICE_API_BASE_URL", DEFAULT_API_BASE_URL)
    )

    # Tenant used when neither an override nor storage provides one
    default_tenant_id: str | None = field(
        default_factory=lambda: os.environ.get("BACKOFFICE_DEFAULT_TENANT_ID")
    )

    # Request timeout (seconds)
    timeout: float = field(
        default_factory=lambda: float(os.environ.get("BACKOFFICE_TIMEOUT", "30"))
    )

    # IANA timezone sent as x-timezone; auto-detected when unset
    timezone: str | None = field(
        default_factory=lambda: os.environ.get("BACKOFFICE_TIMEZONE")
    )

    # JSON file backing persistent storage; in-memory when unset
    storage_path: str | None = field(
        default_factory=lambda: os.environ.get("BACKOFFICE_STORAGE_PATH")
    )

    # Re-send the same request on timeout/5xx (0 = disabled)
    retry_max_attempts: int = field(
        default_factory=lambda: int(os.environ.get("BACKOFFICE_RETRY_MAX_ATTEMPTS", "0"))
    )
    retry_backoff_seconds: float = field(
        default_factory=lambda: float(os.environ.get("BACKOFFICE_RETRY_BACKOFF", "0.3"))
    )

    # Purge credential/tenant/branch keys when a call comes back 401
    clear_session_on_auth_failure: bool = field(
        default_factory=lambda: _env_bool("BACKOFFICE_CLEAR_SESSION_ON_401", "false")
    )

    @property
    def base_url(self) -> str:
        """API base URL without trailing slashes."""
        return (self.api_base_url or DEFAULT_API_BASE_URL).rstrip("/")

    @property
    def fallback_tenant_id(self) -> str | None:
        """Configured default tenant, or None for the "no tenant" sentinel."""
        value = self.default_tenant_id
        if value is None or value.strip().lower() in NO_TENANT_SENTINELS:
            return None
        return value.strip()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClientConfig:
        """Create config from dictionary."""
        env = os.environ
        return cls(
            api_base_url=data.get("api_base_url", env.get("BACKOFFICE_API_BASE_URL", DEFAULT_API_BASE_URL)),
            default_tenant_id=data.get("default_tenant_id", env.get("BACKOFFICE_DEFAULT_TENANT_ID")),
            timeout=float(data.get("timeout", env.get("BACKOFFICE_TIMEOUT", "30"))),
            timezone=data.get("timezone", env.get("BACKOFFICE_TIMEZONE")),
            storage_path=data.get("storage_path", env.get("BACKOFFICE_STORAGE_PATH")),
            retry_max_attempts=int(data.get("retry_max_attempts", env.get("BACKOFFICE_RETRY_MAX_ATTEMPTS", "0"))),
            retry_backoff_seconds=float(data.get("retry_backoff_seconds", env.get("BACKOFFICE_RETRY_BACKOFF", "0.3"))),
            clear_session_on_auth_failure=bool(
                data.get("clear_session_on_auth_failure", _env_bool("BACKOFFICE_CLEAR_SESSION_ON_401", "false"))
            ),
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> ClientConfig:
        """Load config from YAML file."""
        import yaml
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def load(cls, config_file: str | Path | None = None) -> ClientConfig:
        """
        Load config with auto-discovery.

        Search order (last wins):
        1. ~/.backoffice/client.yaml
        2. .backoffice.yaml
        3. Explicit config_file argument
        """
        import yaml

        merged: dict[str, Any] = {}

        for path in CONFIG_SEARCH_PATHS:
            if path.exists():
                with open(path, "r") as f:
                    data = yaml.safe_load(f) or {}
                merged.update(data)

        if config_file:
            with open(config_file, "r") as f:
                data = yaml.safe_load(f) or {}
            merged.update(data)

        return cls.from_dict(merged)
