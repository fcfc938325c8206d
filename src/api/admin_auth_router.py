"""
Admin login endpoints.

Every action loads the caller's login-flow state from the session store,
applies one transition and saves it back.

- GET  /admin-login                         current page model
- POST /admin-login/login                   sign in with the identity provider, then verify
- POST /admin-login/verify                  re-run the admin check
- POST /admin-login/create-first-admin      bootstrap the first admin (after "unauthorized")
- POST /admin-login/retry                   back to idle
- POST /admin-login/logout                  drop identity and cached data
- POST /admin-login/password                grant admin with the shared admin password
- POST /admin-login/reset                   reset the admin password with a reset code
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from src.api.dependencies import (
    get_actor_factory,
    get_auth_client,
    get_auth_sessions,
    get_health_monitor,
    get_query_client,
    get_session_id,
    get_site_config,
)
from src.error_handler import BackendErrorCategory, status_code_for
from src.integrations.actor_factory import ActorFactory
from src.integrations.identity import AuthClient
from src.query.query_client import QueryClient
from src.services.admin_auth import AdminAuthFlow, AdminAuthFlowError, AdminAuthSessionStore
from src.services.backend_health import BackendHealthMonitor
from src.services.reset_admin_credentials import ResetAdminCredentials, ResetState
from src.utils.config_loader import SiteConfig

logger = logging.getLogger(__name__)

api = APIRouter()


class LoginRequest(BaseModel):
    credential: Optional[str] = None


class PasswordLoginRequest(BaseModel):
    password: str = Field(..., min_length=1)


class ResetCredentialsRequest(BaseModel):
    reset_code: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)


def get_admin_auth_flow(
    session_id: str = Depends(get_session_id),
    sessions: AdminAuthSessionStore = Depends(get_auth_sessions),
    auth_client: AuthClient = Depends(get_auth_client),
    qc: QueryClient = Depends(get_query_client),
    factory: ActorFactory = Depends(get_actor_factory),
    health: BackendHealthMonitor = Depends(get_health_monitor),
    config: SiteConfig = Depends(get_site_config),
) -> AdminAuthFlow:
    return AdminAuthFlow(
        auth_client,
        qc,
        factory,
        health,
        state=sessions.load(session_id),
        verify_timeout=config.backend.verify_timeout_seconds,
    )


def _respond(flow: AdminAuthFlow, sessions: AdminAuthSessionStore, session_id: str):
    identity = flow.auth_client.identity
    flow.state.delegation_token = identity.delegation_token if flow.auth_client.is_authenticated else None
    sessions.save(session_id, flow.state)
    return flow.view()


@api.get("/admin-login", tags=["Admin Login"])
async def admin_login_page(
    session_id: str = Depends(get_session_id),
    sessions: AdminAuthSessionStore = Depends(get_auth_sessions),
    flow: AdminAuthFlow = Depends(get_admin_auth_flow),
):
    flow.mount()
    await flow.health.check()
    return _respond(flow, sessions, session_id)


@api.post("/admin-login/login", tags=["Admin Login"])
async def admin_login(
    body: Optional[LoginRequest] = None,
    session_id: str = Depends(get_session_id),
    sessions: AdminAuthSessionStore = Depends(get_auth_sessions),
    flow: AdminAuthFlow = Depends(get_admin_auth_flow),
):
    await flow.login(body.credential if body else None)
    return _respond(flow, sessions, session_id)


@api.post("/admin-login/verify", tags=["Admin Login"])
async def admin_verify(
    session_id: str = Depends(get_session_id),
    sessions: AdminAuthSessionStore = Depends(get_auth_sessions),
    flow: AdminAuthFlow = Depends(get_admin_auth_flow),
):
    flow.retry()
    await flow.verify()
    return _respond(flow, sessions, session_id)


@api.post("/admin-login/create-first-admin", tags=["Admin Login"])
async def admin_create_first_admin(
    session_id: str = Depends(get_session_id),
    sessions: AdminAuthSessionStore = Depends(get_auth_sessions),
    flow: AdminAuthFlow = Depends(get_admin_auth_flow),
):
    try:
        await flow.create_first_admin()
    except AdminAuthFlowError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail={"error": "invalid_step", "message": str(e)})
    return _respond(flow, sessions, session_id)


@api.post("/admin-login/retry", tags=["Admin Login"])
async def admin_retry(
    session_id: str = Depends(get_session_id),
    sessions: AdminAuthSessionStore = Depends(get_auth_sessions),
    flow: AdminAuthFlow = Depends(get_admin_auth_flow),
):
    flow.retry()
    return _respond(flow, sessions, session_id)


@api.post("/admin-login/logout", tags=["Admin Login"])
async def admin_logout(
    session_id: str = Depends(get_session_id),
    sessions: AdminAuthSessionStore = Depends(get_auth_sessions),
    flow: AdminAuthFlow = Depends(get_admin_auth_flow),
):
    await flow.logout()
    view = _respond(flow, sessions, session_id)
    view["redirect_to"] = "/"
    return view


@api.post("/admin-login/password", tags=["Admin Login"])
async def admin_password_login(
    body: PasswordLoginRequest,
    session_id: str = Depends(get_session_id),
    sessions: AdminAuthSessionStore = Depends(get_auth_sessions),
    flow: AdminAuthFlow = Depends(get_admin_auth_flow),
):
    try:
        await flow.login_with_password(body.password)
    except AdminAuthFlowError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail={"error": "unauthenticated", "message": str(e)})
    return _respond(flow, sessions, session_id)


@api.post("/admin-login/reset", tags=["Admin Login"])
async def admin_reset_credentials(
    body: ResetCredentialsRequest,
    auth_client: AuthClient = Depends(get_auth_client),
    qc: QueryClient = Depends(get_query_client),
    factory: ActorFactory = Depends(get_actor_factory),
):
    reset = ResetAdminCredentials(auth_client, qc, factory)
    result = await reset.reset_password(body.reset_code, body.new_password)
    payload = reset.to_dict()

    if result != ResetState.SUCCESS:
        if reset.requires_auth:
            code = status.HTTP_401_UNAUTHORIZED
        elif reset.error is None or reset.error.category == BackendErrorCategory.UNKNOWN:
            code = status.HTTP_400_BAD_REQUEST
        else:
            code = status_code_for(reset.error)
        raise HTTPException(status_code=code, detail=payload)

    logger.info("Admin password reset by %s", auth_client.identity.principal)
    return payload
