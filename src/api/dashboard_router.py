"""
Admin dashboard endpoints. Everything except /dashboard/profile requires an admin.

- GET    /dashboard                      submissions with search/filter/sort + stats
- GET    /dashboard/forms/{form_id}      one submission
- GET    /dashboard/admins               admin principals (caller flagged)
- POST   /dashboard/admins               add an admin by principal text
- DELETE /dashboard/admins/{principal}   remove an admin
- GET    /dashboard/users                all user profiles
- PUT    /dashboard/users/{principal}    edit a user profile
- GET    /dashboard/content              site content
- PUT    /dashboard/content              edit site content
- GET    /dashboard/settings             app settings
- PUT    /dashboard/settings             edit app settings
- GET    /dashboard/profile              caller profile
- PUT    /dashboard/profile              first-time administrator profile setup
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from src.api.dependencies import CallerContext, get_health_monitor, get_site_config, require_admin, require_authenticated
from src.api.errors import backend_http_error, validation_http_error
from src.dashboard.filters import filter_and_sort_forms, parse_insurance_filter, parse_sort
from src.dashboard.stats import compute_dashboard_stats
from src.forms.admin_forms import (
    validate_content_update,
    validate_profile_setup,
    validate_settings_update,
    validate_user_update,
)
from src.forms.validation import FormValidationError
from src.integrations.response_wrappers import (
    app_settings_to_wire,
    customer_form_to_wire,
    site_content_to_wire,
    user_profile_to_wire,
)
from src.services.backend_health import BackendHealthMonitor, HealthStatus
from src.utils.config_loader import SiteConfig
from src.utils.principal import Principal, format_principal, validate_principal

logger = logging.getLogger(__name__)

api = APIRouter()


def _notifications(ctx: CallerContext):
    return ctx.queries.toaster.drain()


def _parse_principal_or_422(text: str, field: str = "principal") -> Principal:
    result = validate_principal(text)
    if not result.is_valid:
        raise validation_http_error(
            FormValidationError({field: result.error or "Invalid principal"}, message=result.error or "Invalid principal")
        )
    return result.principal


# --------------------------------------------------------------------------- #
# Submissions
# --------------------------------------------------------------------------- #
@api.get("/dashboard", tags=["Dashboard"])
async def dashboard(
    search: str = "",
    insurance_type: str = Query(default="all"),
    sort: str = Query(default="newest"),
    ctx: CallerContext = Depends(require_admin),
    health: BackendHealthMonitor = Depends(get_health_monitor),
    config: SiteConfig = Depends(get_site_config),
):
    try:
        wanted = parse_insurance_filter(insurance_type)
    except ValueError:
        raise validation_http_error(
            FormValidationError({"insurance_type": "Unknown insurance type"}, message="Unknown insurance type")
        )

    try:
        forms = await ctx.queries.get_all_forms()
    except Exception as e:
        backend = await health.check()
        error = backend_http_error(e, context={"route": "dashboard"})
        error.detail["backend"] = backend.value
        error.detail["backend_unreachable"] = backend == HealthStatus.UNREACHABLE
        raise error

    sort_option = parse_sort(sort)
    visible = filter_and_sort_forms(forms, search, wanted, sort_option)
    return {
        "forms": [customer_form_to_wire(f) for f in visible],
        "count": len(visible),
        "stats": compute_dashboard_stats(forms).to_dict(),
        "filters": {
            "search": search,
            "insurance_type": wanted.value if wanted else "all",
            "sort": sort_option.value,
        },
        "backend": health.status.value,
        "refresh_interval_seconds": config.backend.forms_refresh_interval_seconds,
    }


@api.get("/dashboard/forms/{form_id}", tags=["Dashboard"])
async def dashboard_form(form_id: int, ctx: CallerContext = Depends(require_admin)):
    try:
        form = await ctx.queries.get_form_by_id(form_id)
    except Exception as e:
        raise backend_http_error(e, context={"route": "dashboard_form", "form_id": form_id})
    if form is None:
        raise HTTPException(status_code=404, detail="Form not found")
    return customer_form_to_wire(form)


# --------------------------------------------------------------------------- #
# Admins
# --------------------------------------------------------------------------- #
@api.get("/dashboard/admins", tags=["Dashboard"])
async def list_admins(ctx: CallerContext = Depends(require_admin)):
    try:
        admins = await ctx.queries.list_admins()
    except Exception as e:
        raise backend_http_error(e, context={"route": "list_admins"})
    me = ctx.auth_client.identity.principal
    return {
        "admins": [
            {"principal": p.to_text(), "display": format_principal(p), "is_current_user": p == me}
            for p in admins
        ]
    }


@api.post("/dashboard/admins", status_code=status.HTTP_201_CREATED, tags=["Dashboard"])
async def add_admin(payload: Dict[str, Any] = Body(...), ctx: CallerContext = Depends(require_admin)):
    principal = _parse_principal_or_422(str(payload.get("principal") or ""))
    try:
        await ctx.queries.add_admin(principal)
    except Exception as e:
        raise backend_http_error(e, context={"route": "add_admin"}, notifications=_notifications(ctx))
    return {"principal": principal.to_text(), "notifications": _notifications(ctx)}


@api.delete("/dashboard/admins/{principal_text}", tags=["Dashboard"])
async def remove_admin(principal_text: str, ctx: CallerContext = Depends(require_admin)):
    principal = _parse_principal_or_422(principal_text)
    try:
        await ctx.queries.remove_admin(principal)
    except Exception as e:
        raise backend_http_error(e, context={"route": "remove_admin"}, notifications=_notifications(ctx))
    return {"removed": principal.to_text(), "notifications": _notifications(ctx)}


# --------------------------------------------------------------------------- #
# Users
# --------------------------------------------------------------------------- #
@api.get("/dashboard/users", tags=["Dashboard"])
async def list_users(ctx: CallerContext = Depends(require_admin)):
    try:
        pairs = await ctx.queries.list_all_user_profiles()
    except Exception as e:
        raise backend_http_error(e, context={"route": "list_users"})
    return {
        "users": [
            {"principal": p.to_text(), "display": format_principal(p), "profile": user_profile_to_wire(profile)}
            for p, profile in pairs
        ]
    }


@api.put("/dashboard/users/{principal_text}", tags=["Dashboard"])
async def update_user(principal_text: str, payload: Dict[str, Any] = Body(...), ctx: CallerContext = Depends(require_admin)):
    principal = _parse_principal_or_422(principal_text)
    try:
        profile = validate_user_update(payload)
        await ctx.queries.update_user_profile(principal, profile)
    except FormValidationError as e:
        raise validation_http_error(e)
    except Exception as e:
        raise backend_http_error(e, context={"route": "update_user"}, notifications=_notifications(ctx))
    return {"principal": principal.to_text(), "profile": user_profile_to_wire(profile), "notifications": _notifications(ctx)}


# --------------------------------------------------------------------------- #
# Content & settings
# --------------------------------------------------------------------------- #
@api.get("/dashboard/content", tags=["Dashboard"])
async def get_content(ctx: CallerContext = Depends(require_admin)):
    try:
        return site_content_to_wire(await ctx.queries.get_site_content())
    except Exception as e:
        raise backend_http_error(e, context={"route": "get_content"})


@api.put("/dashboard/content", tags=["Dashboard"])
async def update_content(payload: Dict[str, Any] = Body(...), ctx: CallerContext = Depends(require_admin)):
    try:
        current = await ctx.queries.get_site_content()
        content = validate_content_update(payload, current)
        await ctx.queries.update_site_content(content)
    except FormValidationError as e:
        raise validation_http_error(e)
    except Exception as e:
        raise backend_http_error(e, context={"route": "update_content"}, notifications=_notifications(ctx))
    return {"content": site_content_to_wire(content), "notifications": _notifications(ctx)}


@api.get("/dashboard/settings", tags=["Dashboard"])
async def get_settings(ctx: CallerContext = Depends(require_admin)):
    try:
        return app_settings_to_wire(await ctx.queries.get_app_settings())
    except Exception as e:
        raise backend_http_error(e, context={"route": "get_settings"})


@api.put("/dashboard/settings", tags=["Dashboard"])
async def update_settings(payload: Dict[str, Any] = Body(...), ctx: CallerContext = Depends(require_admin)):
    try:
        settings = validate_settings_update(payload)
        await ctx.queries.update_app_settings(settings)
    except FormValidationError as e:
        raise validation_http_error(e)
    except Exception as e:
        raise backend_http_error(e, context={"route": "update_settings"}, notifications=_notifications(ctx))
    return {"settings": app_settings_to_wire(settings), "notifications": _notifications(ctx)}


# --------------------------------------------------------------------------- #
# Caller profile
# --------------------------------------------------------------------------- #
@api.get("/dashboard/profile", tags=["Dashboard"])
async def get_profile(ctx: CallerContext = Depends(require_authenticated)):
    try:
        profile = await ctx.queries.get_caller_user_profile()
    except Exception as e:
        raise backend_http_error(e, context={"route": "get_profile"})
    return {
        "principal": ctx.auth_client.identity.principal.to_text(),
        "profile": user_profile_to_wire(profile) if profile else None,
        "needs_setup": profile is None,
    }


@api.put("/dashboard/profile", tags=["Dashboard"])
async def save_profile(payload: Dict[str, Any] = Body(...), ctx: CallerContext = Depends(require_authenticated)):
    try:
        profile = validate_profile_setup(payload)
    except FormValidationError as e:
        raise validation_http_error(e)

    try:
        saved = await ctx.queries.save_caller_user_profile(profile)
    except Exception as e:
        raise backend_http_error(e, context={"route": "save_profile"}, notifications=_notifications(ctx))
    return {"profile": user_profile_to_wire(saved), "notifications": _notifications(ctx)}
