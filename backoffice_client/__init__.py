"""Resilient API access layer for the lending back-office console."""

from .auth import Credential, CredentialResolver
from .client import BackOfficeClient
from .config import ClientConfig
from .context import (
    BranchContext,
    BranchContextResolver,
    RequestContextInjector,
    TenantContext,
    TenantContextResolver,
)
from .discovery import EndpointDiscoveryCache
from .dispatch import DEFAULT_FALLBACK, LENIENT_FALLBACK, EndpointFallbackDispatcher, Operation
from .errors import (
    ApiError,
    AuthRequiredError,
    ErrorKind,
    ForbiddenError,
    NetworkError,
    NotFoundError,
    ServerError,
    UnknownError,
    ValidationError,
    normalize_error,
)
from .impersonation import (
    ImpersonationResult,
    ImpersonationSessionManager,
    ImpersonationSnapshot,
    ImpersonationState,
)
from .resources import Page
from .storage import FileStorage, MemoryStorage, Storage

__version__ = "0.1.0"

__all__ = [
    "BackOfficeClient",
    "ClientConfig",
    "Credential",
    "CredentialResolver",
    "TenantContext",
    "TenantContextResolver",
    "BranchContext",
    "BranchContextResolver",
    "RequestContextInjector",
    "EndpointFallbackDispatcher",
    "EndpointDiscoveryCache",
    "Operation",
    "DEFAULT_FALLBACK",
    "LENIENT_FALLBACK",
    "ImpersonationSessionManager",
    "ImpersonationSnapshot",
    "ImpersonationState",
    "ImpersonationResult",
    "ApiError",
    "AuthRequiredError",
    "ForbiddenError",
    "NotFoundError",
    "ValidationError",
    "ServerError",
    "NetworkError",
    "UnknownError",
    "ErrorKind",
    "normalize_error",
    "Page",
    "Storage",
    "MemoryStorage",
    "FileStorage",
]
