"""
FastAPI application - Main entry point
"""

from dotenv import load_dotenv

load_dotenv()

import logging
import os
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api import admin_auth_router, dashboard_router, forms_router, site_router
from src.api.dependencies import actor_factory, api_key_protection, query_client, session_cache, site_config
from src.services.backend_health import BackendHealthMonitor

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="GB Insurance API",
    description="Insurance lead capture site with an admin dashboard",
    version="1.0.0",
    dependencies=[Depends(api_key_protection)],  # protect everything by default
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# ROUTERS
# ============================================================================
app.include_router(site_router.api)
app.include_router(admin_auth_router.api)
app.include_router(dashboard_router.api)
app.include_router(forms_router.api, prefix="/api/v1")

# Background poller; request handlers read its result from the shared query cache.
health_monitor: Optional[BackendHealthMonitor] = None


# ============================================================================
# STARTUP/SHUTDOWN EVENTS
# ============================================================================
@app.on_event("startup")
async def startup_event():
    """Initialize on startup"""
    global health_monitor
    logger.info("Starting GB Insurance API...")
    logger.info("Backend actor: %s", type(actor_factory.anonymous()).__name__)

    # Test session store connection
    if session_cache.ping():
        logger.info("Session store connection successful")
    else:
        logger.warning("Session store connection failed")

    health_monitor = BackendHealthMonitor(
        query_client,
        actor_factory.anonymous,
        interval_seconds=site_config.backend.health_interval_seconds,
    )
    health_monitor.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Shutting down GB Insurance API...")
    if health_monitor is not None:
        await health_monitor.stop()
