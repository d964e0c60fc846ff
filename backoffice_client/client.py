"""Main client class."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Iterable, TypeVar

import httpx

from .auth import TOKEN_KEYS, CredentialResolver
from .config import ClientConfig
from .context import (
    BRANCH_KEY,
    TENANT_KEYS,
    TENANT_OBJECT_KEY,
    BranchContextResolver,
    RequestContextInjector,
    TenantContextResolver,
)
from .discovery import EndpointDiscoveryCache
from .dispatch import EndpointFallbackDispatcher, Operation
from .errors import AuthRequiredError
from .impersonation import IDENTITY_KEY, ImpersonationResult, ImpersonationSessionManager
from .resources import BranchesAPI, CashAccountsAPI, SettingsAPI, TenantsAPI
from .storage import FileStorage, MemoryStorage, Storage
from .transport import ApiTransport, response_body

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Everything sign_out purges from both stores
SESSION_KEYS: tuple[str, ...] = (
    *TOKEN_KEYS,
    IDENTITY_KEY,
    TENANT_OBJECT_KEY,
    *TENANT_KEYS,
    "tenantName",
    BRANCH_KEY,
)


@dataclass
class BackOfficeClient:
    """
    Client for the back-office API.

    One instance owns its storage, tenant pin, discovery cache and
    impersonation state; construct it once and pass it to whatever needs
    API access. Independent instances share nothing.

    Usage:
        async with BackOfficeClient() as client:
            page = await client.branches.list_branches()
            settings = await client.get_first(["/loans/settings", "/settings/loans"])

        # Or with custom config and an in-memory store
        client = BackOfficeClient(
            config=ClientConfig(api_base_url="https://lender.example.com/api"),
            storage=MemoryStorage({"token": "..."}),
        )
    """
    config: ClientConfig = field(default_factory=ClientConfig)

    # Persistent store; a FileStorage at config.storage_path, else in-memory
    storage: Storage | None = None

    # Session-scoped store (impersonation snapshots live here)
    session: Storage = field(default_factory=MemoryStorage)

    # Optional httpx transport (e.g. httpx.MockTransport in tests)
    http_transport: httpx.AsyncBaseTransport | None = None

    credential_resolver: CredentialResolver = field(init=False)
    tenant_resolver: TenantContextResolver = field(init=False)
    branch_resolver: BranchContextResolver = field(init=False)
    injector: RequestContextInjector = field(init=False)
    api: ApiTransport = field(init=False)
    dispatcher: EndpointFallbackDispatcher = field(init=False)
    discovery: EndpointDiscoveryCache = field(init=False)
    impersonation: ImpersonationSessionManager = field(init=False)

    def __post_init__(self) -> None:
        if self.storage is None:
            self.storage = (
                FileStorage(self.config.storage_path) if self.config.storage_path else MemoryStorage()
            )

        self.credential_resolver = CredentialResolver(self.storage, self.session)
        self.tenant_resolver = TenantContextResolver(
            self.storage, self.session, default_tenant_id=self.config.fallback_tenant_id
        )
        self.branch_resolver = BranchContextResolver(self.storage, self.session)
        self.injector = RequestContextInjector(
            credentials=self.credential_resolver,
            tenants=self.tenant_resolver,
            branches=self.branch_resolver,
            timezone=self.config.timezone,
        )

        self._http = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            headers={"Accept": "application/json"},
            transport=self.http_transport,
        )
        self.api = ApiTransport(self.config, self.injector, self._http)
        self.dispatcher = EndpointFallbackDispatcher(self.api)
        self.discovery = EndpointDiscoveryCache(self.api)
        self.impersonation = ImpersonationSessionManager(
            self.dispatcher,
            self.storage,
            self.session,
            self.credential_resolver,
            self.tenant_resolver,
        )

        self.branches = BranchesAPI(self)
        self.cash_accounts = CashAccountsAPI(self)
        self.tenants = TenantsAPI(self)
        self.settings = SettingsAPI(self)

    async def __aenter__(self) -> BackOfficeClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # -- requests ---------------------------------------------------------

    async def _guard(self, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except AuthRequiredError:
            if self.config.clear_session_on_auth_failure:
                logger.warning("401 Unauthorized, clearing stored session")
                self.sign_out()
            raise

    async def send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        abort: asyncio.Event | None = None,
    ) -> httpx.Response:
        """Send one request to one path and return the 2xx response."""
        return await self._guard(
            self.api.send(method, path, json=json, params=params, headers=headers, abort=abort)
        )

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send one request to one path and return the decoded body."""
        return response_body(await self.send(method, path, **kwargs))

    async def dispatch(self, operation: Operation, **kwargs: Any) -> Any:
        return await self._guard(self.dispatcher.dispatch(operation, **kwargs))

    async def get_first(self, paths: Iterable[str], params: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        """
        GET the first candidate path that answers.

        Usage:
            data = await client.get_first(
                ["/banks/transactions/pending", "/banks/approvals/pending"]
            )
        """
        return await self.dispatch(Operation("GET", paths, params=params), **kwargs)

    async def post_first(self, paths: Iterable[str], body: Any = None, **kwargs: Any) -> Any:
        return await self.dispatch(Operation("POST", paths, body=body), **kwargs)

    async def put_first(self, paths: Iterable[str], body: Any = None, **kwargs: Any) -> Any:
        return await self.dispatch(Operation("PUT", paths, body=body), **kwargs)

    async def patch_first(self, paths: Iterable[str], body: Any = None, **kwargs: Any) -> Any:
        return await self.dispatch(Operation("PATCH", paths, body=body), **kwargs)

    async def delete_first(self, paths: Iterable[str], **kwargs: Any) -> Any:
        return await self.dispatch(Operation("DELETE", paths), **kwargs)

    # -- tenant -----------------------------------------------------------

    def set_tenant_id(self, tenant_id: str | None) -> None:
        """Pin the tenant for every request until cleared."""
        self.tenant_resolver.set_override(tenant_id)

    def clear_tenant_id(self) -> None:
        self.tenant_resolver.clear_override()

    def get_tenant_id(self) -> str | None:
        return self.tenant_resolver.resolve().tenant_id

    # -- session ----------------------------------------------------------

    async def begin_impersonation(
        self, tenant_id: str, *, abort: asyncio.Event | None = None
    ) -> ImpersonationResult:
        return await self.impersonation.begin_impersonation(tenant_id, abort=abort)

    async def end_impersonation(self) -> None:
        await self.impersonation.end_impersonation()

    @property
    def is_impersonating(self) -> bool:
        return self.impersonation.is_impersonating

    def sign_out(self) -> None:
        """Forget credential, identity, tenant and branch in both stores."""
        for store in (self.storage, self.session):
            for key in SESSION_KEYS:
                store.remove(key)
        self.credential_resolver.clear()
        self.tenant_resolver.clear_override()
