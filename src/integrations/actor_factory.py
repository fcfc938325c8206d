"""
Backend actor factory.

The selection of mock vs real backend clients happens here and nowhere else.

- BACKEND_MODE=real|live  -> HttpBackendActor
- BACKEND_MODE=mock|test  -> MockBackendActor over the process-wide in-memory canister
- otherwise               -> real iff BACKEND_API_URL is set
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

import httpx

from src.integrations.clients.mocks.backend import InMemoryCanister
from src.integrations.clients.real_http.backend import HttpBackendActor
from src.integrations.contracts.interfaces import BackendActor
from src.integrations.identity import Identity

logger = logging.getLogger(__name__)

_default_canister: Optional[InMemoryCanister] = None


def get_default_canister() -> InMemoryCanister:
    global _default_canister
    if _default_canister is None:
        _default_canister = InMemoryCanister(
            admin_password=os.getenv("MOCK_ADMIN_PASSWORD", "change-me"),
            reset_code=os.getenv("MOCK_ADMIN_RESET_CODE", "GB-RESET-0000"),
        )
    return _default_canister


def _should_use_real_backend() -> bool:
    mode = os.getenv("BACKEND_MODE", "").strip().lower()
    if mode in {"real", "live"}:
        return True
    if mode in {"mock", "test"}:
        return False
    return bool(os.getenv("BACKEND_API_URL"))


@dataclass
class ActorConfig:
    use_real: Optional[bool] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout_seconds: float = 20.0
    canister: Optional[InMemoryCanister] = None
    transport: Optional[httpx.AsyncBaseTransport] = None


def create_actor_with_config(
    identity: Optional[Identity] = None,
    config: Optional[ActorConfig] = None,
) -> BackendActor:
    """Build a backend actor bound to `identity` (anonymous when None)."""
    config = config or ActorConfig()
    identity = identity or Identity.anonymous()

    use_real = config.use_real if config.use_real is not None else _should_use_real_backend()
    if use_real:
        return HttpBackendActor(
            principal=identity.principal,
            delegation_token=identity.delegation_token,
            base_url=config.base_url,
            api_key=config.api_key,
            timeout_seconds=config.timeout_seconds,
            transport=config.transport,
        )

    canister = config.canister or get_default_canister()
    return canister.actor_for(identity.principal)


class ActorFactory:
    """Callable handed to services so they never pick a client themselves."""

    def __init__(self, config: Optional[ActorConfig] = None) -> None:
        self.config = config or ActorConfig()

    def __call__(self, identity: Optional[Identity] = None) -> BackendActor:
        return create_actor_with_config(identity, self.config)

    def anonymous(self) -> BackendActor:
        return create_actor_with_config(None, self.config)
