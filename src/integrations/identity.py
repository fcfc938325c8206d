"""
Identity adapter.

Wraps the external identity provider behind `IdentityProvider` and keeps the
per-session login state in `AuthClient`. The provider issues delegation tokens;
a token resolves back to the principal it was issued for until it expires.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.utils.principal import Principal

logger = logging.getLogger(__name__)


class IdentityError(Exception):
    pass


@dataclass
class Identity:
    principal: Principal
    delegation_token: Optional[str] = None
    expires_at: Optional[float] = None   # epoch seconds

    @classmethod
    def anonymous(cls) -> "Identity":
        return cls(principal=Principal.anonymous())

    def is_anonymous(self) -> bool:
        return self.principal.is_anonymous()

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now if now is not None else time.time()) >= self.expires_at


class IdentityProvider(ABC):
    """Every identity provider client must implement this interface."""

    @abstractmethod
    async def authenticate(self, credential: Optional[str] = None) -> Identity:
        """Run the provider's login and return the delegated identity."""

    @abstractmethod
    async def resolve(self, delegation_token: str) -> Optional[Identity]:
        """Map a delegation token back to its identity, or None if invalid/expired."""

    @abstractmethod
    async def revoke(self, delegation_token: str) -> None:
        """Invalidate a delegation token."""


class LoginStatus(str, Enum):
    INITIALIZING = "initializing"
    IDLE = "idle"
    LOGGING_IN = "logging-in"
    SUCCESS = "success"
    LOGIN_ERROR = "login-error"


class AuthClient:
    """Login state for one browser session."""

    def __init__(self, provider: IdentityProvider, identity: Optional[Identity] = None) -> None:
        self.provider = provider
        self.identity = identity
        self.status = LoginStatus.SUCCESS if identity and not identity.is_anonymous() else LoginStatus.IDLE
        self.login_error: Optional[Exception] = None

    @property
    def is_authenticated(self) -> bool:
        return (
            self.identity is not None
            and not self.identity.is_anonymous()
            and not self.identity.is_expired()
        )

    async def restore(self, delegation_token: Optional[str]) -> Optional[Identity]:
        """Re-attach a previously issued delegation (e.g. from a session store)."""
        if not delegation_token:
            return None
        self.status = LoginStatus.INITIALIZING
        try:
            self.identity = await self.provider.resolve(delegation_token)
        finally:
            self.status = LoginStatus.SUCCESS if self.is_authenticated else LoginStatus.IDLE
        return self.identity

    async def login(self, credential: Optional[str] = None) -> Identity:
        if self.is_authenticated:
            raise IdentityError("User is already authenticated")

        self.status = LoginStatus.LOGGING_IN
        self.login_error = None
        try:
            identity = await self.provider.authenticate(credential)
        except Exception as exc:
            self.status = LoginStatus.LOGIN_ERROR
            self.login_error = exc
            logger.warning("Identity provider login failed: %s", exc)
            raise

        self.identity = identity
        self.status = LoginStatus.SUCCESS
        logger.info("Identity provider login succeeded: principal=%s", identity.principal)
        return identity

    async def clear(self) -> None:
        if self.identity and self.identity.delegation_token:
            try:
                await self.provider.revoke(self.identity.delegation_token)
            except Exception as exc:
                logger.warning("Failed to revoke delegation: %s", exc)
        self.identity = None
        self.status = LoginStatus.IDLE
