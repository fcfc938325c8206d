"""Admin password reset using a one-time reset code."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional

from src.error_handler import CategorizedError, categorize_backend_error
from src.integrations.contracts.interfaces import BackendActor
from src.integrations.identity import AuthClient, Identity
from src.query.query_client import QueryClient
from src.services.queries import IS_ADMIN, IS_PRIMARY_ADMIN

logger = logging.getLogger(__name__)

SIGN_IN_REQUIRED_MESSAGE = "You must sign in with the identity provider before resetting admin credentials."
NO_BACKEND_MESSAGE = "Backend connection not available. Please retry."
RESET_FAILED_MESSAGE = "Reset failed. Please check your reset code and try again."


class ResetState(str, Enum):
    IDLE = "idle"
    INITIALIZING_ACTOR = "initializing-actor"
    RESETTING = "resetting"
    SUCCESS = "success"
    ERROR = "error"


class ResetAdminCredentials:
    def __init__(
        self,
        auth_client: AuthClient,
        query_client: QueryClient,
        actor_factory: Callable[[Optional[Identity]], BackendActor],
    ) -> None:
        self.auth_client = auth_client
        self.query_client = query_client
        self.actor_factory = actor_factory
        self.state = ResetState.IDLE
        self.error: Optional[CategorizedError] = None
        self._actor: Optional[BackendActor] = None
        self._actor_init_error: Optional[Exception] = None

    @property
    def requires_auth(self) -> bool:
        return not self.auth_client.is_authenticated

    def _set_error(self, error: BaseException) -> None:
        self.error = categorize_backend_error(error)
        self.state = ResetState.ERROR

    def initialize_actor(self) -> None:
        self.state = ResetState.INITIALIZING_ACTOR
        self._actor_init_error = None
        try:
            self._actor = self.actor_factory(self.auth_client.identity)
        except Exception as exc:
            logger.error("Failed to initialize actor for reset: %s", exc)
            self._actor_init_error = exc
            self._set_error(exc)
            return
        self.state = ResetState.IDLE

    async def reset_password(self, reset_code: str, new_password: str) -> ResetState:
        self.error = None

        if not self.auth_client.is_authenticated:
            self._set_error(PermissionError(SIGN_IN_REQUIRED_MESSAGE))
            return self.state

        if self._actor is None and self._actor_init_error is None:
            self.initialize_actor()
        if self._actor is None:
            self._set_error(self._actor_init_error or ConnectionError(NO_BACKEND_MESSAGE))
            return self.state

        self.state = ResetState.RESETTING
        try:
            ok = await self._actor.reset_admin_password(reset_code, new_password)
            if not ok:
                raise ValueError(RESET_FAILED_MESSAGE)
        except Exception as exc:
            logger.error("Reset password error: %s", exc)
            self._set_error(exc)
            return self.state

        self.state = ResetState.SUCCESS
        self.query_client.invalidate_queries(IS_ADMIN)
        self.query_client.invalidate_queries(IS_PRIMARY_ADMIN)
        return self.state

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "requires_auth": self.requires_auth,
            "error": None if self.error is None else {
                "category": self.error.category.value,
                "message": self.error.message,
                "can_retry": self.error.can_retry,
            },
        }
