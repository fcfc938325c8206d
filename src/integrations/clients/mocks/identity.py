"""
Identity provider: MOCK client.

⚠️  Issues delegation tokens without any external login window.
    The credential, when given, seeds the principal so the same credential
    always logs in as the same principal. Set `fail_with` to make the next
    logins fail (e.g. to simulate a blocked popup).
"""

import logging
import secrets
import time
from typing import Callable, Dict, Optional

from src.integrations.identity import Identity, IdentityProvider
from src.utils.principal import Principal

logger = logging.getLogger(__name__)

DEFAULT_DELEGATION_TTL_SECONDS = 8 * 60 * 60


class MockIdentityProvider(IdentityProvider):
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_DELEGATION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.fail_with: Optional[Exception] = None
        self._delegations: Dict[str, Identity] = {}

    async def authenticate(self, credential: Optional[str] = None) -> Identity:
        if self.fail_with is not None:
            raise self.fail_with

        seed = credential.encode("utf-8") if credential else secrets.token_bytes(32)
        identity = Identity(
            principal=Principal.self_authenticating(seed),
            delegation_token=secrets.token_urlsafe(32),
            expires_at=self.clock() + self.ttl_seconds,
        )
        self._delegations[identity.delegation_token] = identity
        logger.info("[MOCK] Issued delegation for %s", identity.principal)
        return identity

    async def resolve(self, delegation_token: str) -> Optional[Identity]:
        identity = self._delegations.get(delegation_token)
        if identity is None:
            return None
        if identity.is_expired(self.clock()):
            self._delegations.pop(delegation_token, None)
            return None
        return identity

    async def revoke(self, delegation_token: str) -> None:
        self._delegations.pop(delegation_token, None)
