"""
Admin login flow.

States: idle -> authenticating -> verifying -> success | unauthorized | error,
plus creating-admin when an authenticated non-admin bootstraps the first admin.

The flow is driven one action per HTTP request, so its state (including the
caller's delegation token and session parameters such as `adminInitError`) is
persisted in the session store between requests by `AdminAuthSessionStore`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from src.error_handler import UNREACHABLE_MESSAGE, categorize_backend_error
from src.integrations.contracts.interfaces import BackendActor
from src.integrations.identity import AuthClient, Identity
from src.query.query_client import QueryClient
from src.services.backend_health import BackendHealthMonitor, HealthStatus
from src.services.notifications import Toaster
from src.services.queries import BackendQueries

logger = logging.getLogger(__name__)

ADMIN_INIT_ERROR_PARAM = "adminInitError"
DASHBOARD_PATH = "/dashboard"
LOGIN_PATH = "/admin-login"

VERIFY_TIMEOUT_SECONDS = 10.0
REDIRECT_DELAY_SECONDS = 1.0
RELOAD_DELAY_SECONDS = 1.5

UNAUTHORIZED_ADMIN_MESSAGE = "You are not authorized as an admin. You can create the first admin if none exists."
POPUP_BLOCKED_MESSAGE = "Login popup was blocked. Please allow popups for this site and try again."
ALREADY_LOGGED_IN_MESSAGE = "You are already logged in. Refreshing..."
ADMIN_EXISTS_MESSAGE = "An admin already exists. Please contact the system administrator."
VERIFICATION_AFTER_CREATE_FAILED = "Admin creation succeeded but verification failed. An admin may already exist."
INVALID_PASSWORD_MESSAGE = "Invalid admin password. Please try again."


class AuthStep(str, Enum):
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    VERIFYING = "verifying"
    SUCCESS = "success"
    UNAUTHORIZED = "unauthorized"
    ERROR = "error"
    CREATING_ADMIN = "creating-admin"


STEP_MESSAGES = {
    AuthStep.AUTHENTICATING: "Connecting to the identity provider...",
    AuthStep.VERIFYING: "Verifying admin status...",
    AuthStep.CREATING_ADMIN: "Creating first admin...",
    AuthStep.SUCCESS: "Authentication successful! Redirecting...",
}


class AdminAuthFlowError(Exception):
    """Raised when an action is not allowed from the current step."""


@dataclass
class AdminAuthState:
    step: AuthStep = AuthStep.IDLE
    error_message: Optional[str] = None
    redirect_to: Optional[str] = None
    redirect_after_seconds: Optional[float] = None
    delegation_token: Optional[str] = None
    session_params: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["step"] = self.step.value
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AdminAuthState":
        data = dict(data or {})
        return cls(
            step=AuthStep(data.get("step") or AuthStep.IDLE.value),
            error_message=data.get("error_message"),
            redirect_to=data.get("redirect_to"),
            redirect_after_seconds=data.get("redirect_after_seconds"),
            delegation_token=data.get("delegation_token"),
            session_params=dict(data.get("session_params") or {}),
        )


class AdminAuthFlow:
    def __init__(
        self,
        auth_client: AuthClient,
        query_client: QueryClient,
        actor_factory: Callable[[Optional[Identity]], BackendActor],
        health: BackendHealthMonitor,
        *,
        state: Optional[AdminAuthState] = None,
        toaster: Optional[Toaster] = None,
        verify_timeout: float = VERIFY_TIMEOUT_SECONDS,
        redirect_delay: float = REDIRECT_DELAY_SECONDS,
    ) -> None:
        self.auth_client = auth_client
        self.query_client = query_client
        self.actor_factory = actor_factory
        self.health = health
        self.state = state or AdminAuthState()
        self.toaster = toaster or Toaster()
        self.verify_timeout = verify_timeout
        self.redirect_delay = redirect_delay

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    @property
    def queries(self) -> BackendQueries:
        return BackendQueries(
            self.query_client,
            self.actor_factory(self.auth_client.identity),
            health=self.health,
            toaster=self.toaster,
        )

    @property
    def step_message(self) -> str:
        return STEP_MESSAGES.get(self.state.step, "")

    @property
    def can_create_first_admin(self) -> bool:
        return self.state.step == AuthStep.UNAUTHORIZED and self.auth_client.is_authenticated

    def _clear_session_param(self) -> None:
        self.state.session_params.pop(ADMIN_INIT_ERROR_PARAM, None)

    def _fail(self, message: str) -> AdminAuthState:
        self.state.step = AuthStep.ERROR
        self.state.error_message = message
        self.state.redirect_to = None
        self.state.redirect_after_seconds = None
        return self.state

    def _succeed(self) -> AdminAuthState:
        self.state.step = AuthStep.SUCCESS
        self.state.error_message = None
        self._clear_session_param()
        self.state.redirect_to = DASHBOARD_PATH
        self.state.redirect_after_seconds = self.redirect_delay
        self.toaster.success(STEP_MESSAGES[AuthStep.SUCCESS])
        return self.state

    async def _check_admin(self) -> bool:
        return await asyncio.wait_for(self.queries.is_primary_admin(strict=True), timeout=self.verify_timeout)

    # ------------------------------------------------------------------ #
    # Actions
    # ------------------------------------------------------------------ #
    def mount(self) -> AdminAuthState:
        """Surface an error carried across a redirect in the session parameters."""
        message = self.state.session_params.get(ADMIN_INIT_ERROR_PARAM)
        if message:
            self._fail(message)
        return self.state

    async def login(self, credential: Optional[str] = None) -> AdminAuthState:
        if self.auth_client.is_authenticated:
            self.state.step = AuthStep.IDLE
            return await self.verify()

        if await self.health.check() != HealthStatus.OK:
            return self._fail(UNREACHABLE_MESSAGE)

        self.state.error_message = None
        self._clear_session_param()
        self.state.step = AuthStep.AUTHENTICATING

        try:
            identity = await self.auth_client.login(credential)
        except Exception as exc:
            logger.error("Identity provider login failed: %s", exc)
            text = str(exc)
            if "popup" in text.lower() or "blocked" in text.lower():
                return self._fail(POPUP_BLOCKED_MESSAGE)
            if "User is already authenticated" in text:
                self._fail(ALREADY_LOGGED_IN_MESSAGE)
                self.state.redirect_to = LOGIN_PATH
                self.state.redirect_after_seconds = RELOAD_DELAY_SECONDS
                return self.state
            return self._fail(text or "Identity provider login failed. Please try again.")

        self.state.delegation_token = identity.delegation_token
        return await self.verify()

    async def verify(self) -> AdminAuthState:
        if not self.auth_client.is_authenticated:
            self.state.step = AuthStep.IDLE
            return self.state
        if self.state.step not in (AuthStep.IDLE, AuthStep.VERIFYING, AuthStep.AUTHENTICATING):
            return self.state

        self.state.step = AuthStep.VERIFYING
        self.state.error_message = None
        self.queries.invalidate_admin_status()

        try:
            is_admin = await self._check_admin()
        except Exception as exc:
            logger.error("Admin verification failed: %s", exc)
            return self._fail(categorize_backend_error(exc).message)

        if is_admin:
            return self._succeed()

        self.state.step = AuthStep.UNAUTHORIZED
        self.state.error_message = UNAUTHORIZED_ADMIN_MESSAGE
        return self.state

    async def create_first_admin(self) -> AdminAuthState:
        if not self.can_create_first_admin:
            raise AdminAuthFlowError("Creating the first admin requires an authenticated, unauthorized session")

        self.state.step = AuthStep.CREATING_ADMIN
        self.state.error_message = None

        try:
            await self.queries.create_first_admin()
            is_admin = await self._check_admin()
        except Exception as exc:
            logger.error("Failed to create first admin: %s", exc)
            if "already" in str(exc).lower():
                return self._fail(ADMIN_EXISTS_MESSAGE)
            return self._fail(categorize_backend_error(exc).message or "Failed to create first admin. Please try again.")

        if is_admin:
            return self._succeed()
        return self._fail(VERIFICATION_AFTER_CREATE_FAILED)

    async def login_with_password(self, password: str) -> AdminAuthState:
        """Grant admin to the authenticated caller using the shared admin password."""
        if not self.auth_client.is_authenticated:
            raise AdminAuthFlowError("Sign in with the identity provider before using the admin password")

        try:
            granted = await self.queries.admin_login_with_password(password)
        except Exception as exc:
            logger.error("Admin password login failed: %s", exc)
            return self._fail(categorize_backend_error(exc).message)

        if not granted:
            return self._fail(INVALID_PASSWORD_MESSAGE)
        self.state.step = AuthStep.IDLE
        return await self.verify()

    def retry(self) -> AdminAuthState:
        self.state.step = AuthStep.IDLE
        self.state.error_message = None
        self.state.redirect_to = None
        self.state.redirect_after_seconds = None
        self._clear_session_param()
        return self.state

    async def logout(self) -> AdminAuthState:
        if self.auth_client.is_authenticated:
            self.queries.forget_caller()
        await self.auth_client.clear()
        self.state = AdminAuthState()
        return self.state

    def view(self) -> Dict[str, Any]:
        """Page model for the admin login screen."""
        state = self.state
        processing = state.step in (AuthStep.AUTHENTICATING, AuthStep.VERIFYING, AuthStep.CREATING_ADMIN)
        return {
            "step": state.step.value,
            "message": self.step_message,
            "error_message": state.error_message,
            "is_authenticated": self.auth_client.is_authenticated,
            "principal": self.auth_client.identity.principal.to_text() if self.auth_client.is_authenticated else None,
            "login_status": self.auth_client.status.value,
            "health": self.health.status.value,
            "show_login_button": not self.auth_client.is_authenticated and state.step != AuthStep.SUCCESS,
            "login_enabled": not processing and self.health.status == HealthStatus.OK,
            "show_create_first_admin": self.can_create_first_admin,
            "show_retry": state.step == AuthStep.ERROR,
            "redirect_to": state.redirect_to,
            "redirect_after_seconds": state.redirect_after_seconds,
            "notifications": self.toaster.drain(),
        }


# ---------------------------------------------------------------------------
# Persistence between requests
# ---------------------------------------------------------------------------

class AdminAuthSessionStore:
    KEY_PREFIX = "admin_auth:"

    def __init__(self, cache, ttl: int = 8 * 60 * 60) -> None:
        self.cache = cache
        self.ttl = ttl

    def _key(self, session_id: str) -> str:
        return f"{self.KEY_PREFIX}{session_id}"

    def load(self, session_id: str) -> AdminAuthState:
        return AdminAuthState.from_dict(self.cache.get_session(self._key(session_id)))

    def save(self, session_id: str, state: AdminAuthState) -> None:
        # An idle state with nothing to carry loads the same as no record.
        if state == AdminAuthState():
            self.delete(session_id)
            return
        self.cache.set_session(self._key(session_id), state.to_dict(), ttl=self.ttl)

    def delete(self, session_id: str) -> None:
        self.cache.delete_session(self._key(session_id))

    def set_param(self, session_id: str, name: str, value: str) -> None:
        state = self.load(session_id)
        state.session_params[name] = value
        self.save(session_id, state)
