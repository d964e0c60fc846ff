"""Support impersonation: switch into another tenant's session and back.

The operator's resolved credential, identity and tenant are copied into
the session store before the switch, together with the slot each one
was resolved from, and copied back on revert. That copy is the only
thing ever used to restore; either store may have been overwritten
while impersonating.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import quote

from .auth import TOKEN_KEYS, CredentialResolver
from .context import TENANT_KEYS, TENANT_OBJECT_KEY, TenantContextResolver
from .dispatch import EndpointFallbackDispatcher
from .errors import ApiError, normalize_error
from .storage import Storage, scoped

logger = logging.getLogger(__name__)

IDENTITY_KEY = "user"

# Session-scoped snapshot keys
ORIGINAL_CREDENTIAL_KEY = "support_original_token"
ORIGINAL_CREDENTIAL_SLOT_KEY = "support_original_token_slot"
ORIGINAL_IDENTITY_KEY = "support_original_user"
ORIGINAL_TENANT_KEY = "support_original_tenant"
ORIGINAL_TENANT_SLOT_KEY = "support_original_tenant_slot"
ORIGINAL_TENANT_RAW_KEY = "support_original_tenant_raw"
SNAPSHOT_KEYS = (
    ORIGINAL_CREDENTIAL_KEY,
    ORIGINAL_CREDENTIAL_SLOT_KEY,
    ORIGINAL_IDENTITY_KEY,
    ORIGINAL_TENANT_KEY,
    ORIGINAL_TENANT_SLOT_KEY,
    ORIGINAL_TENANT_RAW_KEY,
)

# Tenant slots that are not a stored key
OVERRIDE_SLOT = "override"
DEFAULT_SLOT = "default"

START_PATHS = (
    "/admin/tenants/{tenant_id}/impersonate",
    "/system/tenants/{tenant_id}/impersonate",
    "/org/admin/tenants/{tenant_id}/impersonate",
    "/admin/impersonate",
    "/auth/impersonate",
    "/support/impersonate",
)
STOP_PATHS = (
    "/admin/impersonate/stop",
    "/auth/impersonate/stop",
    "/support/impersonate/stop",
)


class ImpersonationState(Enum):
    NORMAL = "normal"
    IMPERSONATING = "impersonating"


@dataclass(frozen=True)
class ImpersonationSnapshot:
    """
    What to restore when impersonation ends.

    Empty strings mean "was not set". Stored slots are written as
    ``"<scope>:<key>"``, e.g. ``"storage:authToken"``. ``tenant_slot`` may
    also be "override" (a pin was in force) or "default" (nothing stored).
    ``tenant_raw`` is the stored value verbatim, so a "tenant" object
    comes back unchanged.
    """
    original_credential: str
    credential_slot: str
    original_identity: str
    original_tenant_id: str
    tenant_slot: str
    tenant_raw: str


@dataclass(frozen=True)
class ImpersonationResult:
    tenant_id: str
    user: dict[str, Any] | None
    credential_installed: bool


def _tenant_from_user(user: Any) -> str | None:
    if not isinstance(user, dict):
        return None
    tenant_id = user.get("tenantId")
    if tenant_id in (None, "") and isinstance(user.get("tenant"), dict):
        tenant_id = user["tenant"].get("id")
    return None if tenant_id in (None, "") else str(tenant_id)


def _slot(scope: str | None, key: str | None) -> str:
    return f"{scope}:{key}" if scope and key else ""


class ImpersonationSessionManager:
    """
    Two-state machine: NORMAL <-> IMPERSONATING.

    ``begin_impersonation`` snapshots at most once per episode; a second
    call while impersonating switches target but keeps the first
    snapshot. Any failure while switching restores the snapshot and
    lands back in NORMAL.
    """

    start_paths: tuple[str, ...] = START_PATHS
    stop_paths: tuple[str, ...] = STOP_PATHS

    def __init__(
        self,
        dispatcher: EndpointFallbackDispatcher,
        storage: Storage,
        session: Storage,
        credentials: CredentialResolver,
        tenants: TenantContextResolver,
    ):
        self.dispatcher = dispatcher
        self.storage = storage
        self.session = session
        self.credentials = credentials
        self.tenants = tenants
        # A snapshot left in the session store means an episode is still open
        self._state = (
            ImpersonationState.IMPERSONATING if self.has_snapshot() else ImpersonationState.NORMAL
        )
        if self._state is ImpersonationState.IMPERSONATING:
            self._reapply_pin()

    @property
    def state(self) -> ImpersonationState:
        return self._state

    @property
    def is_impersonating(self) -> bool:
        return self._state is ImpersonationState.IMPERSONATING

    # -- snapshot ---------------------------------------------------------

    def has_snapshot(self) -> bool:
        return self.session.get(ORIGINAL_CREDENTIAL_KEY) is not None

    def snapshot(self) -> ImpersonationSnapshot | None:
        if not self.has_snapshot():
            return None
        return ImpersonationSnapshot(
            original_credential=self.session.get(ORIGINAL_CREDENTIAL_KEY) or "",
            credential_slot=self.session.get(ORIGINAL_CREDENTIAL_SLOT_KEY) or "",
            original_identity=self.session.get(ORIGINAL_IDENTITY_KEY) or "",
            original_tenant_id=self.session.get(ORIGINAL_TENANT_KEY) or "",
            tenant_slot=self.session.get(ORIGINAL_TENANT_SLOT_KEY) or DEFAULT_SLOT,
            tenant_raw=self.session.get(ORIGINAL_TENANT_RAW_KEY) or "",
        )

    def _capture(self) -> bool:
        """Write the snapshot unless one already exists."""
        if self.has_snapshot():
            logger.debug("Impersonation snapshot already present, keeping it")
            return False

        tenant = self.tenants.resolve()
        if tenant.source == "storage":
            tenant_slot = _slot(tenant.scope, tenant.key)
            store = self.session if tenant.scope == "session" else self.storage
            tenant_raw = store.get(tenant.key) or ""
        else:
            tenant_slot = OVERRIDE_SLOT if tenant.source == "override" else DEFAULT_SLOT
            tenant_raw = ""
        self.session.set(ORIGINAL_TENANT_KEY, tenant.tenant_id or "")
        self.session.set(ORIGINAL_TENANT_SLOT_KEY, tenant_slot)
        self.session.set(ORIGINAL_TENANT_RAW_KEY, tenant_raw)

        self.session.set(ORIGINAL_IDENTITY_KEY, self.storage.get(IDENTITY_KEY) or "")

        credential = self.credentials.resolve()
        self.session.set(
            ORIGINAL_CREDENTIAL_SLOT_KEY,
            _slot(credential.scope, credential.key) if credential else "",
        )
        # Written last: its presence marks a complete snapshot
        self.session.set(ORIGINAL_CREDENTIAL_KEY, credential.value if credential else "")
        return True

    def _reinstate(self, keys: tuple[str, ...], slot: str, value: str) -> None:
        """
        Make ``slot`` the first hit for ``keys`` again: every slot ahead of
        it in lookup order is removed and ``value`` is written into it. An
        empty slot removes every key from both stores.
        """
        for key in keys:
            for scope, store in scoped(self.storage, self.session):
                if _slot(scope, key) == slot:
                    store.set(key, value)
                    return
                store.remove(key)

    def _restore(self) -> None:
        """Put the snapshot back, clear it, and return to NORMAL."""
        snap = self.snapshot()
        if snap is not None:
            self._reinstate(
                TOKEN_KEYS,
                snap.credential_slot if snap.original_credential else "",
                snap.original_credential,
            )

            if snap.original_identity:
                self.storage.set(IDENTITY_KEY, snap.original_identity)
            else:
                self.storage.remove(IDENTITY_KEY)

            if snap.tenant_slot == OVERRIDE_SLOT:
                self.tenants.set_override(snap.original_tenant_id)
            else:
                self.tenants.clear_override()
                self._reinstate(
                    TENANT_KEYS + (TENANT_OBJECT_KEY,),
                    "" if snap.tenant_slot == DEFAULT_SLOT else snap.tenant_slot,
                    snap.tenant_raw,
                )

            for key in SNAPSHOT_KEYS:
                self.session.remove(key)
        self._state = ImpersonationState.NORMAL

    def _reapply_pin(self) -> None:
        tenant_id = _tenant_from_user(self._stored_identity())
        if tenant_id:
            self.tenants.set_override(tenant_id)

    def _stored_identity(self) -> Any:
        raw = self.storage.get(IDENTITY_KEY)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return None

    # -- transitions ------------------------------------------------------

    def _install(self, data: Any, target_tenant_id: str) -> ImpersonationResult:
        body = data if isinstance(data, dict) else {}

        token = body.get("token") or body.get("jwt") or body.get("accessToken")
        if token:
            self.credentials.store(str(token))
        else:
            logger.warning("Impersonation response carried no token; keeping current credential")

        user = body.get("user") if isinstance(body.get("user"), dict) else None
        if user is not None:
            self.storage.set(IDENTITY_KEY, json.dumps(user))

        tenant_id = _tenant_from_user(user) or target_tenant_id
        self.tenants.set_override(tenant_id)
        self._state = ImpersonationState.IMPERSONATING
        return ImpersonationResult(tenant_id=tenant_id, user=user, credential_installed=bool(token))

    async def begin_impersonation(
        self,
        target_tenant_id: str,
        *,
        abort: asyncio.Event | None = None,
    ) -> ImpersonationResult:
        """
        Switch into the target tenant's session.

        Raises:
            ApiError: Normalized failure of the remote call; the original
                session has already been restored when this is raised
        """
        target = str(target_tenant_id)
        if self.is_impersonating:
            logger.info(f"Switching impersonation target to tenant {target}")
        self._capture()

        encoded = quote(target, safe="")
        paths = [p.format(tenant_id=encoded) for p in self.start_paths]
        try:
            data = await self.dispatcher.post_first(paths, {"tenantId": target}, abort=abort)
            result = self._install(data, target)
        except asyncio.CancelledError:
            self._restore()
            raise
        except Exception as e:
            error = normalize_error(e)
            logger.warning(f"Impersonation of tenant {target} failed, restoring original session: {error.message}")
            self._restore()
            if error is e:
                raise
            raise error from e

        logger.info(f"Impersonating tenant {result.tenant_id}")
        return result

    async def end_impersonation(self) -> None:
        """Revert to the operator's own session. No-op from NORMAL."""
        if not self.is_impersonating and not self.has_snapshot():
            logger.debug("end_impersonation called while not impersonating")
            return

        try:
            await self.dispatcher.post_first(list(self.stop_paths), {})
        except ApiError as e:
            logger.warning(f"Could not notify server that impersonation ended: {e.message}")
        finally:
            self._restore()
        logger.info("Impersonation ended, original session restored")
