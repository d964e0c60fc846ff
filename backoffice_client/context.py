"""Tenant, branch and per-request context resolution.

Everything that decorates an outgoing request (credential, tenant,
branch, timezone, correlation id) is derived here, from storage, on
every request. Nothing in this module is allowed to fail a request.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx

from .auth import CredentialResolver
from .storage import Storage, StorageScope, scoped

logger = logging.getLogger(__name__)

TENANT_KEYS: tuple[str, ...] = ("x-tenant-id", "tenantId", "tenantID")
TENANT_OBJECT_KEY = "tenant"
BRANCH_KEY = "activeBranchId"

TENANT_HEADER = "x-tenant-id"
BRANCH_HEADER = "x-branch-id"
TIMEZONE_HEADER = "x-timezone"
TZ_OFFSET_HEADER = "x-tz-offset"
REQUEST_ID_HEADER = "x-request-id"

TenantSource = Literal["override", "storage", "default"]


def _lookup(stores: list[tuple[StorageScope, Storage]], key: str) -> tuple[str, StorageScope] | None:
    for scope, store in stores:
        value = store.get(key)
        if value and value.strip():
            return value.strip(), scope
    return None


@dataclass(frozen=True)
class TenantContext:
    """
    The active tenant and where it was found.

    ``key`` and ``scope`` name the stored slot when ``source`` is
    "storage"; they are None otherwise.
    """
    tenant_id: str | None
    source: TenantSource
    key: str | None = None
    scope: StorageScope | None = None


@dataclass(frozen=True)
class BranchContext:
    branch_id: str | None


@dataclass
class TenantContextResolver:
    """
    Resolve the active tenant.

    Order: explicit override, then the persisted keys in TENANT_KEYS,
    then a JSON object stored under "tenant" with an "id" field, then
    the configured default. The override outranks storage until it is
    explicitly cleared.
    """
    storage: Storage
    session: Storage | None = None
    default_tenant_id: str | None = None

    _override: str | None = field(default=None, init=False, repr=False)

    @property
    def override(self) -> str | None:
        return self._override

    def set_override(self, tenant_id: str | None) -> None:
        """Pin the tenant for every request; empty values clear the pin."""
        self._override = str(tenant_id) if tenant_id else None

    def clear_override(self) -> None:
        self._override = None

    def _stores(self) -> list[tuple[StorageScope, Storage]]:
        return scoped(self.storage, self.session)

    def _from_tenant_object(self) -> TenantContext | None:
        found = _lookup(self._stores(), TENANT_OBJECT_KEY)
        if found is None:
            return None
        raw, scope = found
        try:
            data = json.loads(raw)
        except ValueError:
            return None
        if isinstance(data, dict) and data.get("id") not in (None, ""):
            return TenantContext(str(data["id"]), "storage", TENANT_OBJECT_KEY, scope)
        return None

    def resolve(self) -> TenantContext:
        if self._override:
            return TenantContext(self._override, "override")

        stores = self._stores()
        for key in TENANT_KEYS:
            found = _lookup(stores, key)
            if found:
                return TenantContext(found[0], "storage", key, found[1])

        from_object = self._from_tenant_object()
        if from_object:
            return from_object

        return TenantContext(self.default_tenant_id or None, "default")


@dataclass
class BranchContextResolver:
    """Read-only: the active branch comes from storage only."""
    storage: Storage
    session: Storage | None = None

    def resolve(self) -> BranchContext:
        found = _lookup(scoped(self.storage, self.session), BRANCH_KEY)
        return BranchContext(found[0] if found else None)


def local_timezone_name(configured: str | None = None) -> str | None:
    """
    Best-effort IANA name of the local timezone.

    Tries the configured value, the TZ environment variable,
    /etc/timezone and the /etc/localtime symlink. Never raises.
    """
    try:
        if configured:
            return configured
        tz = os.environ.get("TZ", "").lstrip(":")
        if tz and "/" in tz:
            return tz
        etc_timezone = Path("/etc/timezone")
        if etc_timezone.exists():
            name = etc_timezone.read_text().strip()
            if name:
                return name
        localtime = Path("/etc/localtime")
        if localtime.is_symlink():
            target = str(localtime.resolve())
            if "zoneinfo/" in target:
                return target.split("zoneinfo/", 1)[1]
        return tz or None
    except Exception as e:
        logger.debug(f"Timezone name lookup failed: {e}")
        return None


def utc_offset_minutes(tz_name: str | None = None) -> int | None:
    """
    Minutes east of UTC for tz_name, falling back to the local zone when
    the name cannot be loaded. Never raises.
    """
    try:
        zone = None
        if tz_name:
            try:
                zone = ZoneInfo(tz_name)
            except (ZoneInfoNotFoundError, ValueError):
                zone = None
        now = datetime.now(zone) if zone else datetime.now().astimezone()
        offset = now.utcoffset()
        if offset is None:
            return None
        return int(offset.total_seconds() // 60)
    except Exception as e:
        logger.debug(f"UTC offset lookup failed for {tz_name!r}: {e}")
        return None


def new_request_id() -> str:
    return uuid.uuid4().hex


@dataclass
class RequestContextInjector:
    """
    Compose credential, tenant, branch, timezone and correlation headers.

    ``inject`` returns a new header set and never raises: any part that
    cannot be derived is left out.
    """
    credentials: CredentialResolver
    tenants: TenantContextResolver
    branches: BranchContextResolver
    timezone: str | None = None

    def inject(self, headers: httpx.Headers | dict[str, str] | None = None) -> httpx.Headers:
        try:
            out = httpx.Headers(headers or {})
        except Exception as e:
            logger.debug(f"Dropping unusable caller headers: {e}")
            out = httpx.Headers()

        try:
            out.update(self.credentials.authorization_header())
        except Exception as e:
            logger.debug(f"Skipping Authorization header: {e}")

        try:
            tenant_id = self.tenants.resolve().tenant_id
            if tenant_id:
                out[TENANT_HEADER] = tenant_id
        except Exception as e:
            logger.debug(f"Skipping {TENANT_HEADER} header: {e}")

        try:
            branch_id = self.branches.resolve().branch_id
            if branch_id:
                out[BRANCH_HEADER] = branch_id
        except Exception as e:
            logger.debug(f"Skipping {BRANCH_HEADER} header: {e}")

        tz_name = local_timezone_name(self.timezone)
        try:
            if tz_name:
                out[TIMEZONE_HEADER] = tz_name
        except Exception as e:
            logger.debug(f"Skipping {TIMEZONE_HEADER} header: {e}")

        try:
            offset = utc_offset_minutes(tz_name)
            if offset is not None:
                out[TZ_OFFSET_HEADER] = str(offset)
        except Exception as e:
            logger.debug(f"Skipping {TZ_OFFSET_HEADER} header: {e}")

        # Idempotent: a caller-supplied id is never replaced
        try:
            if REQUEST_ID_HEADER not in out:
                out[REQUEST_ID_HEADER] = new_request_id()
        except Exception as e:
            logger.debug(f"Skipping {REQUEST_ID_HEADER} header: {e}")

        return out
