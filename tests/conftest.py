"""Pytest fixtures: in-memory backend, query cache, identity provider and API client."""

from typing import List

import pytest

from src.integrations.actor_factory import ActorConfig, ActorFactory
from src.integrations.clients.mocks.backend import InMemoryCanister
from src.integrations.clients.mocks.identity import MockIdentityProvider
from src.integrations.identity import AuthClient
from src.query.query_client import QueryClient
from src.services.backend_health import BackendHealthMonitor
from src.utils.log_once import clear_all_logged_errors

ADMIN_PASSWORD = "s3cret-admin"
RESET_CODE = "RESET-1234"


class RecordingSleep:
    """Stands in for asyncio.sleep so retries run instantly; keeps the requested delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture(autouse=True)
def _reset_logged_errors():
    clear_all_logged_errors()
    yield
    clear_all_logged_errors()


@pytest.fixture
def canister():
    return InMemoryCanister(admin_password=ADMIN_PASSWORD, reset_code=RESET_CODE)


@pytest.fixture
def actor_factory(canister):
    return ActorFactory(ActorConfig(use_real=False, canister=canister))


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def query_client(sleep):
    return QueryClient(sleep=sleep)


@pytest.fixture
def health(query_client, actor_factory):
    return BackendHealthMonitor(query_client, actor_factory.anonymous)


@pytest.fixture
def identity_provider():
    return MockIdentityProvider()


@pytest.fixture
def auth_client(identity_provider):
    return AuthClient(identity_provider)


@pytest.fixture
def api_client(monkeypatch, query_client, actor_factory, identity_provider):
    """TestClient with every process-wide singleton swapped for a per-test instance."""
    from fastapi.testclient import TestClient

    from src.api import dependencies
    from src.api.main import app
    from src.database.redis import RedisCache

    monkeypatch.delenv("API_KEYS", raising=False)
    sessions = RedisCache()

    app.dependency_overrides[dependencies.get_query_client] = lambda: query_client
    app.dependency_overrides[dependencies.get_actor_factory] = lambda: actor_factory
    app.dependency_overrides[dependencies.get_identity_provider] = lambda: identity_provider
    app.dependency_overrides[dependencies.get_session_cache] = lambda: sessions

    def make_client() -> TestClient:
        return TestClient(app)

    yield make_client
    app.dependency_overrides.clear()
