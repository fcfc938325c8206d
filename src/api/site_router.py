"""
Public site endpoints.

- GET /        home page model (branding, hero, services, contact)
- GET /health  service, session store and backend reachability
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends

from src.services.backend_health import BackendHealthMonitor
from src.services.queries import BackendQueries
from src.services.site_content import build_home_page
from src.services.traffic_analytics import record_visit
from src.utils.config_loader import SiteConfig
from src.api.dependencies import (
    get_health_monitor,
    get_public_queries,
    get_session_cache,
    get_site_config,
)

logger = logging.getLogger(__name__)

api = APIRouter()


@api.get("/", tags=["Site"])
async def home(
    queries: BackendQueries = Depends(get_public_queries),
    config: SiteConfig = Depends(get_site_config),
):
    await record_visit(queries, "/")

    settings = content = None
    backend_available = True
    try:
        settings = await queries.get_app_settings()
        content = await queries.get_site_content()
    except Exception as exc:
        # Serve the configured content on its own.
        logger.warning("Home page falling back to configured content: %s", exc)
        backend_available = False

    page = build_home_page(config, settings, content)
    page["backend_available"] = backend_available
    return page


@api.get("/health", tags=["Health"])
async def health_check(
    health: BackendHealthMonitor = Depends(get_health_monitor),
    cache=Depends(get_session_cache),
):
    """Detailed health check (session store, backend)."""
    backend = await health.check()
    return {
        "status": "healthy",
        "session_store": "connected" if cache.ping() else "unavailable",
        "backend": backend.value,
        "timestamp": datetime.now().isoformat(),
    }
