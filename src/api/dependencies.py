"""
Shared singletons and FastAPI dependencies.

Process-wide objects (query cache, session store, actor factory, identity
provider, site config) are created once here; routes receive them through
`Depends` so tests can swap any of them with `app.dependency_overrides`.
"""

import hmac
import logging
import os
import uuid
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, Header, HTTPException, Request, Response, status

from src.error_handler import get_user_friendly_error_message
from src.integrations.actor_factory import ActorFactory
from src.integrations.identity import AuthClient, IdentityProvider
from src.query.query_client import QueryClient
from src.services.admin_auth import ADMIN_INIT_ERROR_PARAM, LOGIN_PATH, AdminAuthSessionStore
from src.services.backend_health import BackendHealthMonitor
from src.services.notifications import Toaster
from src.services.queries import BackendQueries
from src.utils.config_loader import SiteConfig, load_site_config

load_dotenv()

logger = logging.getLogger(__name__)

SESSION_COOKIE = "gb_session"
SESSION_HEADER = "X-Session-ID"

_ALLOWLIST_PATHS = {
    "/",
    "/health",
    "/docs",
    "/docs/oauth2-redirect",
    "/openapi.json",
    "/redoc",
}

# ============================================================================
# SINGLETONS
# ============================================================================

query_client = QueryClient()

# Session store: real Redis when REDIS_URL is set, else in-memory stub
if os.getenv("REDIS_URL"):
    from src.database.redis_real import RedisCache

    session_cache = RedisCache(url=os.environ["REDIS_URL"])
else:
    from src.database.redis import RedisCache

    session_cache = RedisCache()

actor_factory = ActorFactory()

if os.getenv("IDENTITY_PROVIDER_URL"):
    from src.integrations.clients.real_http.identity import HttpIdentityProvider

    identity_provider: IdentityProvider = HttpIdentityProvider()
else:
    from src.integrations.clients.mocks.identity import MockIdentityProvider

    identity_provider = MockIdentityProvider()

site_config = load_site_config()


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_query_client() -> QueryClient:
    return query_client


def get_session_cache():
    """Dependency for the session store (Redis or in-memory)."""
    return session_cache


def get_actor_factory() -> ActorFactory:
    return actor_factory


def get_identity_provider() -> IdentityProvider:
    return identity_provider


def get_site_config() -> SiteConfig:
    return site_config


def get_health_monitor(
    qc: QueryClient = Depends(get_query_client),
    factory: ActorFactory = Depends(get_actor_factory),
) -> BackendHealthMonitor:
    return BackendHealthMonitor(
        qc,
        factory.anonymous,
        interval_seconds=site_config.backend.health_interval_seconds,
    )


def get_auth_sessions(cache=Depends(get_session_cache)) -> AdminAuthSessionStore:
    return AdminAuthSessionStore(cache)


def get_session_id(
    request: Request,
    response: Response,
    x_session_id: Optional[str] = Header(default=None, alias=SESSION_HEADER),
) -> str:
    session_id = (x_session_id or request.cookies.get(SESSION_COOKIE) or "").strip()
    if not session_id:
        session_id = str(uuid.uuid4())
    response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")
    response.headers[SESSION_HEADER] = session_id
    return session_id


async def get_auth_client(
    session_id: str = Depends(get_session_id),
    sessions: AdminAuthSessionStore = Depends(get_auth_sessions),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> AuthClient:
    client = AuthClient(provider)
    state = sessions.load(session_id)
    await client.restore(state.delegation_token)
    return client


def get_public_queries(
    qc: QueryClient = Depends(get_query_client),
    factory: ActorFactory = Depends(get_actor_factory),
    health: BackendHealthMonitor = Depends(get_health_monitor),
) -> BackendQueries:
    return BackendQueries(qc, factory.anonymous(), health=health, toaster=Toaster())


def get_caller_queries(
    auth_client: AuthClient = Depends(get_auth_client),
    qc: QueryClient = Depends(get_query_client),
    factory: ActorFactory = Depends(get_actor_factory),
    health: BackendHealthMonitor = Depends(get_health_monitor),
) -> BackendQueries:
    return BackendQueries(qc, factory(auth_client.identity), health=health, toaster=Toaster())


@dataclass
class CallerContext:
    session_id: str
    auth_client: AuthClient
    queries: BackendQueries


def require_authenticated(
    session_id: str = Depends(get_session_id),
    auth_client: AuthClient = Depends(get_auth_client),
    queries: BackendQueries = Depends(get_caller_queries),
) -> CallerContext:
    if not auth_client.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "unauthenticated", "message": "Please sign in to continue.", "redirect_to": LOGIN_PATH},
        )
    return CallerContext(session_id, auth_client, queries)


async def require_admin(
    ctx: CallerContext = Depends(require_authenticated),
    sessions: AdminAuthSessionStore = Depends(get_auth_sessions),
) -> CallerContext:
    try:
        is_admin = await ctx.queries.is_primary_admin(strict=True)
    except Exception as exc:
        # Carry the reason to the login page across the redirect.
        logger.error("Admin check failed for %s: %s", ctx.auth_client.identity.principal, exc)
        message = get_user_friendly_error_message(exc)
        sessions.set_param(ctx.session_id, ADMIN_INIT_ERROR_PARAM, message)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "admin_check_failed", "message": message, "redirect_to": LOGIN_PATH},
        )

    if not is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "access_denied",
                "message": "You do not have permission to access the admin dashboard.",
                "principal": ctx.auth_client.identity.principal.to_text(),
            },
        )
    return ctx


# ============================================================================
# API KEY PROTECTION
# ============================================================================

def get_api_keys():
    keys = os.getenv("API_KEYS", "")
    return [k.strip() for k in keys.split(",") if k.strip()]


async def api_key_protection(
    request: Request = None,  # keep Request type so FastAPI injects it; default None for direct calls/tests
    x_api_key: str = Header(default=None, alias="X-API-KEY"),
):
    """Require X-API-KEY on every route when API_KEYS is configured."""
    valid_keys = get_api_keys()
    if not valid_keys:
        return

    path = request.url.path if request is not None else "<no-request>"
    if request is not None and path in _ALLOWLIST_PATHS:
        return

    candidate = (x_api_key or "").strip()
    ok = bool(candidate) and any(hmac.compare_digest(candidate, k) for k in valid_keys)
    if not ok:
        logger.info("API key check failed: path=%s header_present=%s", path, bool(x_api_key))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API Key",
        )
