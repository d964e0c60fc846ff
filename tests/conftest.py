"""Shared pytest fixtures for backoffice_client tests."""

from __future__ import annotations

import pytest
import pytest_asyncio

from backoffice_client import BackOfficeClient, ClientConfig, MemoryStorage

from tests.fixtures.mock_service import MockBackOfficeService


def make_config(**kwargs) -> ClientConfig:
    """ClientConfig with test defaults that ignore BACKOFFICE_* env vars."""
    values = {
        "api_base_url": "http://mock",
        "default_tenant_id": None,
        "timeout": 5.0,
        "timezone": "UTC",
        "storage_path": None,
        "retry_max_attempts": 0,
        "retry_backoff_seconds": 0.0,
        "clear_session_on_auth_failure": False,
    }
    values.update(kwargs)
    return ClientConfig(**values)


@pytest.fixture
def mock_service():
    return MockBackOfficeService()


@pytest_asyncio.fixture
async def make_client(mock_service):
    """
    Factory fixture for clients wired to ``mock_service``.

    Accepts ``storage``/``session`` dicts (or Storage objects), a
    ``service`` to route to instead of the default one, and any
    ClientConfig field as a keyword.
    """
    clients: list[BackOfficeClient] = []

    def _factory(storage=None, session=None, service=None, **config_kwargs) -> BackOfficeClient:
        if isinstance(storage, dict) or storage is None:
            storage = MemoryStorage(storage or {})
        if isinstance(session, dict) or session is None:
            session = MemoryStorage(session or {})
        svc = service or mock_service
        client = BackOfficeClient(
            config=make_config(**config_kwargs),
            storage=storage,
            session=session,
            http_transport=svc.get_transport(),
        )
        clients.append(client)
        return client

    yield _factory

    for client in clients:
        await client.aclose()
