"""
Backend reads and writes through the shared query cache.

`BackendQueries` binds one caller's actor to the process-wide `QueryClient`.
Reads use stable keys so that writes can invalidate them; user-specific keys
carry the caller's principal text. Retries of every read are skipped while the
backend is known to be unreachable.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from src.forms.validation import FormValidationError
from src.integrations.contracts.blobs import ExternalBlob
from src.integrations.contracts.interfaces import (
    AppSettings,
    BackendActor,
    CustomerForm,
    InsuranceType,
    SiteContent,
    UserProfile,
    UserRole,
)
from src.query.query_client import Mutation, QueryClient
from src.services.backend_health import BackendHealthMonitor, HealthStatus
from src.services.notifications import Toaster
from src.utils.log_once import clear_logged_error, log_once
from src.utils.principal import Principal

logger = logging.getLogger(__name__)

# Query keys
CURRENT_USER_PROFILE = "currentUserProfile"
IS_ADMIN = "isAdmin"
IS_PRIMARY_ADMIN = "isPrimaryAdmin"
ALL_FORMS = "allForms"
APP_SETTINGS = "appSettings"
SITE_CONTENT = "siteContent"
USER_PROFILES = "userProfiles"
ADMINS = "admins"
VISITOR_COUNT = "visitorCount"

ADMIN_STATUS_KEYS = (IS_ADMIN, IS_PRIMARY_ADMIN)
# Keys suffixed with the caller principal text
CALLER_KEYS = (CURRENT_USER_PROFILE, IS_ADMIN, IS_PRIMARY_ADMIN)

FORMS_REFRESH_INTERVAL_SECONDS = 30


def primary_admin_retry_delay(attempt_index: int, error: BaseException) -> float:
    return min(0.5 * (attempt_index + 1), 2.0)


def all_forms_retry_delay(attempt_index: int, error: BaseException) -> float:
    return min(1.0 * (2 ** attempt_index), 3.0)


class BackendQueries:
    def __init__(
        self,
        query_client: QueryClient,
        actor: BackendActor,
        *,
        health: Optional[BackendHealthMonitor] = None,
        toaster: Optional[Toaster] = None,
    ) -> None:
        self.query_client = query_client
        self.actor = actor
        self.health = health
        self.toaster = toaster or Toaster()

    @property
    def principal_text(self) -> str:
        return self.actor.caller.to_text()

    def _retry_unless_unreachable(self, max_retries: int) -> Callable[[int, BaseException], bool]:
        def should_retry(failure_count: int, error: BaseException) -> bool:
            if self.health is not None and self.health.status == HealthStatus.UNREACHABLE:
                return False
            return failure_count < max_retries

        return should_retry

    @property
    def admin_status_log_key(self) -> str:
        return f"admin-status:{self.principal_text}"

    def invalidate_admin_status(self) -> None:
        for key in ADMIN_STATUS_KEYS:
            self.query_client.invalidate_queries(key)

    def forget_caller(self) -> None:
        """Drop this caller's cached entries and logged errors. Shared entries stay."""
        for key in CALLER_KEYS:
            self.query_client.remove_queries((key, self.principal_text))
        clear_logged_error(self.admin_status_log_key)

    # ------------------------------------------------------------------ #
    # Caller profile
    # ------------------------------------------------------------------ #
    async def get_caller_user_profile(self) -> Optional[UserProfile]:
        return await self.query_client.fetch_query(
            (CURRENT_USER_PROFILE, self.principal_text),
            self.actor.get_caller_user_profile,
            retry=False,
            stale_time=0,
        )

    async def save_caller_user_profile(self, profile: UserProfile) -> UserProfile:
        key = (CURRENT_USER_PROFILE, self.principal_text)

        async def save(new_profile: UserProfile) -> UserProfile:
            for field, label in (("name", "Name"), ("email", "Email"), ("role", "Role")):
                if not str(getattr(new_profile, field, "") or "").strip():
                    raise FormValidationError({field: f"{label} is required"}, message=f"{label} is required")
            await self.actor.save_caller_user_profile(new_profile)
            return new_profile

        async def on_mutate(new_profile: UserProfile) -> Dict[str, Any]:
            await self.query_client.cancel_queries(key)
            snapshot = self.query_client.get_query_state(key) is not None
            previous = self.query_client.get_query_data(key)
            self.query_client.set_query_data(key, new_profile)
            return {"has_snapshot": snapshot, "previous_profile": previous}

        def on_success(saved: UserProfile, _variables: Any, _context: Any) -> None:
            self.query_client.set_query_data(key, saved)
            self.query_client.invalidate_queries(CURRENT_USER_PROFILE)
            self.query_client.invalidate_queries(IS_ADMIN)
            self.toaster.success("Profile saved successfully!", "Your administrator profile has been created.")

        def on_error(error: BaseException, _variables: Any, context: Optional[Dict[str, Any]]) -> None:
            if context and context["has_snapshot"]:
                self.query_client.set_query_data(key, context["previous_profile"])
            else:
                self.query_client.remove_queries(key)
            logger.error("Error saving profile: %s", error)
            self.toaster.error(
                "Failed to save profile",
                str(error) or "Please check your connection and try again.",
            )

        def on_settled(*_args: Any) -> None:
            self.query_client.invalidate_queries(CURRENT_USER_PROFILE)

        mutation = Mutation(save, on_mutate=on_mutate, on_success=on_success, on_error=on_error, on_settled=on_settled)
        return await self.query_client.mutate(mutation, profile)

    # ------------------------------------------------------------------ #
    # Admin status
    # ------------------------------------------------------------------ #
    async def _admin_or_false(self) -> bool:
        try:
            return await self.actor.is_caller_admin()
        except Exception as exc:
            log_once(self.admin_status_log_key, "Error checking admin status", exc, log=logger)
            return False

    async def is_caller_admin(self) -> bool:
        return await self.query_client.fetch_query(
            (IS_ADMIN, self.principal_text),
            self._admin_or_false,
            retry=self._retry_unless_unreachable(2),
            retry_delay=0.5,
            stale_time=0,
        )

    async def is_primary_admin(self, *, strict: bool = False) -> bool:
        """Admin gate for the dashboard. `strict` lets backend errors propagate."""
        return await self.query_client.fetch_query(
            (IS_PRIMARY_ADMIN, self.principal_text),
            self.actor.is_caller_admin if strict else self._admin_or_false,
            retry=self._retry_unless_unreachable(3),
            retry_delay=primary_admin_retry_delay,
            stale_time=0,
        )

    async def create_first_admin(self) -> None:
        await self.actor.initialize_access_control("", "")
        self.invalidate_admin_status()

    async def admin_login_with_password(self, password: str) -> bool:
        ok = await self.actor.admin_login_with_password(password)
        if ok:
            self.invalidate_admin_status()
        return ok

    # ------------------------------------------------------------------ #
    # Customer forms
    # ------------------------------------------------------------------ #
    async def submit_form(
        self,
        *,
        name: str,
        phone: str,
        email: str,
        address: str,
        insurance_interests: List[InsuranceType],
        feedback: str,
        documents: List[ExternalBlob],
    ) -> None:
        async def submit(_variables: Any) -> None:
            await self.actor.submit_form(name, phone, email, address, insurance_interests, feedback, documents)

        def on_success(*_args: Any) -> None:
            self.toaster.success("Form submitted successfully! We will contact you soon.")
            self.query_client.invalidate_queries(ALL_FORMS)

        def on_error(error: BaseException, *_args: Any) -> None:
            self.toaster.error(f"Failed to submit form: {error}")

        await self.query_client.mutate(Mutation(submit, on_success=on_success, on_error=on_error))

    async def get_all_forms(self) -> List[CustomerForm]:
        return await self.query_client.fetch_query(
            (ALL_FORMS,),
            self.actor.get_all_forms,
            retry=self._retry_unless_unreachable(3),
            retry_delay=all_forms_retry_delay,
            stale_time=0,
        )

    async def get_form_by_id(self, form_id: int) -> Optional[CustomerForm]:
        return await self.query_client.fetch_query(
            (ALL_FORMS, int(form_id)),
            lambda: self.actor.get_form_by_id(int(form_id)),
            retry=self._retry_unless_unreachable(3),
            retry_delay=all_forms_retry_delay,
        )

    # ------------------------------------------------------------------ #
    # Settings & content
    # ------------------------------------------------------------------ #
    async def get_app_settings(self) -> AppSettings:
        return await self.query_client.fetch_query(
            (APP_SETTINGS,),
            self.actor.get_app_settings,
            retry=self._retry_unless_unreachable(2),
            retry_delay=1.0,
            stale_time=10.0,
        )

    async def update_app_settings(self, settings: AppSettings) -> None:
        async def update(new_settings: AppSettings) -> None:
            await self.actor.update_app_settings(new_settings)

        def on_success(*_args: Any) -> None:
            self.query_client.invalidate_queries(APP_SETTINGS)
            self.toaster.success("Settings updated successfully")

        def on_error(error: BaseException, *_args: Any) -> None:
            self.toaster.error(str(error) or "Failed to update settings")

        await self.query_client.mutate(Mutation(update, on_success=on_success, on_error=on_error), settings)

    async def get_site_content(self) -> SiteContent:
        return await self.query_client.fetch_query(
            (SITE_CONTENT,),
            self.actor.get_site_content,
            retry=self._retry_unless_unreachable(2),
            retry_delay=1.0,
            stale_time=10.0,
        )

    async def update_site_content(self, content: SiteContent) -> None:
        async def update(new_content: SiteContent) -> None:
            await self.actor.update_site_content(new_content)

        def on_success(*_args: Any) -> None:
            self.query_client.invalidate_queries(SITE_CONTENT)
            self.toaster.success("Site content updated successfully")

        def on_error(error: BaseException, *_args: Any) -> None:
            self.toaster.error(str(error) or "Failed to update content")

        await self.query_client.mutate(Mutation(update, on_success=on_success, on_error=on_error), content)

    # ------------------------------------------------------------------ #
    # User profiles & admins
    # ------------------------------------------------------------------ #
    async def list_all_user_profiles(self) -> List[Tuple[Principal, UserProfile]]:
        return await self.query_client.fetch_query(
            (USER_PROFILES,),
            self.actor.list_all_user_profiles,
            retry=self._retry_unless_unreachable(2),
            retry_delay=1.0,
        )

    async def update_user_profile(self, user: Principal, profile: UserProfile) -> None:
        async def update(_variables: Any) -> None:
            await self.actor.update_user_profile(user, profile)

        def on_success(*_args: Any) -> None:
            self.query_client.invalidate_queries(USER_PROFILES)
            self.query_client.invalidate_queries((CURRENT_USER_PROFILE, user.to_text()))
            self.toaster.success("User profile updated successfully")

        def on_error(error: BaseException, *_args: Any) -> None:
            self.toaster.error(str(error) or "Failed to update user profile")

        await self.query_client.mutate(Mutation(update, on_success=on_success, on_error=on_error))

    async def list_admins(self) -> List[Principal]:
        return await self.query_client.fetch_query(
            (ADMINS,),
            self.actor.list_admins,
            retry=self._retry_unless_unreachable(2),
            retry_delay=1.0,
        )

    async def _set_role(self, user: Principal, role: UserRole, success: str, failure: str) -> None:
        async def assign(_variables: Any) -> None:
            await self.actor.assign_caller_user_role(user, role)

        def on_success(*_args: Any) -> None:
            self.query_client.invalidate_queries(ADMINS)
            self.invalidate_admin_status()
            self.toaster.success(success)

        def on_error(error: BaseException, *_args: Any) -> None:
            self.toaster.error(str(error) or failure)

        await self.query_client.mutate(Mutation(assign, on_success=on_success, on_error=on_error))

    async def add_admin(self, user: Principal) -> None:
        await self._set_role(user, UserRole.ADMIN, "Admin added successfully", "Failed to add admin")

    async def remove_admin(self, user: Principal) -> None:
        await self._set_role(user, UserRole.USER, "Admin removed successfully", "Failed to remove admin")

    # ------------------------------------------------------------------ #
    # Visitors
    # ------------------------------------------------------------------ #
    async def get_visitor_count(self) -> int:
        return await self.query_client.fetch_query(
            (VISITOR_COUNT,),
            self.actor.get_visitor_count,
            retry=self._retry_unless_unreachable(2),
            retry_delay=1.0,
            stale_time=10.0,
        )

    async def record_visitor(self) -> None:
        await self.actor.record_visitor()
        self.query_client.invalidate_queries(VISITOR_COUNT)
