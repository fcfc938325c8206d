"""
Real Backend HTTP Client.

Purpose:
- Calls the hosted backend through its HTTP gateway as the current identity
- Uploads blob bytes before any call that references them
- Normalizes responses into the records from `contracts.interfaces`

Gateway protocol:
- POST {base_url}/call/{method} with {"args": [...]} -> {"ok": value} or {"reject": "message"}
- POST {base_url}/blobs with raw bytes -> {"url": "..."}
- Caller identity travels as "Authorization: Bearer <delegation token>"
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional, Tuple

import httpx

from src.integrations.contracts.blobs import ExternalBlob
from src.integrations.contracts.interfaces import (
    AppSettings,
    BackendActor,
    BackendCallError,
    CustomerForm,
    InsuranceType,
    SiteContent,
    UserProfile,
    UserRole,
)
from src.integrations.response_wrappers import (
    app_settings_to_wire,
    normalize_app_settings,
    normalize_customer_form,
    normalize_site_content,
    normalize_user_profile,
    site_content_to_wire,
    user_profile_to_wire,
)
from src.utils.principal import Principal

logger = logging.getLogger(__name__)


class HttpBackendActor(BackendActor):
    def __init__(
        self,
        principal: Optional[Principal] = None,
        delegation_token: Optional[str] = None,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._principal = principal or Principal.anonymous()
        self._delegation_token = delegation_token
        self.base_url = (base_url or os.getenv("BACKEND_API_URL", "")).rstrip("/")
        self.api_key = api_key or os.getenv("BACKEND_API_KEY", "")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def caller(self) -> Principal:
        return self._principal

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #
    def _headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {"Content-Type": "application/json"}
        if self._delegation_token:
            headers["Authorization"] = f"Bearer {self._delegation_token}"
        if self.api_key:
            headers["X-API-KEY"] = self.api_key
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport)

    async def _call(self, method: str, *args: Any) -> Any:
        if not self.base_url:
            raise ValueError("BACKEND_API_URL is not configured.")

        url = f"{self.base_url}/call/{method}"
        logger.debug("Backend call %s as %s", method, self._principal)
        async with self._client() as client:
            response = await client.post(url, json={"args": list(args)}, headers=self._headers())

        body: Dict[str, Any] = {}
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = {}

        if "reject" in body:
            raise BackendCallError(str(body["reject"]))
        if response.status_code in (401, 403):
            raise BackendCallError(f"Unauthorized: gateway returned {response.status_code}")
        response.raise_for_status()
        return body.get("ok")

    async def _upload(self, blob: ExternalBlob) -> str:
        if blob.is_uploaded:
            return blob.get_direct_url()

        headers = {k: v for k, v in self._headers().items() if k != "Content-Type"}
        headers["Content-Type"] = blob.content_type
        if blob.filename:
            headers["X-Filename"] = blob.filename

        async def body():
            for chunk in blob.iter_upload_chunks():
                yield chunk

        async with self._client() as client:
            response = await client.post(f"{self.base_url}/blobs", content=body(), headers=headers)
            response.raise_for_status()
            url = response.json()["url"]
        blob.mark_uploaded(url)
        return url

    # ------------------------------------------------------------------ #
    # Access control
    # ------------------------------------------------------------------ #
    async def admin_login_with_password(self, password: str) -> bool:
        return bool(await self._call("adminLoginWithPassword", password))

    async def assign_caller_user_role(self, user: Principal, role: UserRole) -> None:
        await self._call("assignCallerUserRole", user.to_text(), UserRole(role).value)

    async def initialize_access_control(self, admin_token: str, user_provided_token: str) -> None:
        await self._call("initializeAccessControl", admin_token, user_provided_token)

    async def list_admins(self) -> List[Principal]:
        return [Principal.from_text(p) for p in await self._call("listAdmins") or []]

    async def get_caller_user_role(self) -> UserRole:
        return UserRole(await self._call("getCallerUserRole"))

    async def is_caller_admin(self) -> bool:
        return bool(await self._call("isCallerAdmin"))

    async def reset_admin_password(self, reset_code: str, new_password: str) -> bool:
        return bool(await self._call("resetAdminPassword", reset_code, new_password))

    # ------------------------------------------------------------------ #
    # Customer forms
    # ------------------------------------------------------------------ #
    async def submit_form(
        self,
        name: str,
        phone: str,
        email: str,
        address: str,
        interests: List[InsuranceType],
        feedback: str,
        documents: List[ExternalBlob],
    ) -> None:
        document_urls = [await self._upload(doc) for doc in documents]
        await self._call(
            "submitForm",
            name,
            phone,
            email,
            address,
            [InsuranceType(i).value for i in interests],
            feedback,
            document_urls,
        )

    async def get_all_forms(self) -> List[CustomerForm]:
        return [normalize_customer_form(raw) for raw in await self._call("getAllForms") or []]

    async def get_form_by_id(self, form_id: int) -> Optional[CustomerForm]:
        raw = await self._call("getFormById", str(form_id))
        return normalize_customer_form(raw) if raw else None

    async def get_forms_by_insurance_type(self, insurance_type: InsuranceType) -> List[CustomerForm]:
        raws = await self._call("getFormsByInsuranceType", InsuranceType(insurance_type).value)
        return [normalize_customer_form(raw) for raw in raws or []]

    # ------------------------------------------------------------------ #
    # Profiles
    # ------------------------------------------------------------------ #
    async def get_caller_user_profile(self) -> Optional[UserProfile]:
        return normalize_user_profile(await self._call("getCallerUserProfile"))

    async def save_caller_user_profile(self, profile: UserProfile) -> None:
        await self._call("saveCallerUserProfile", user_profile_to_wire(profile))

    async def get_user_profile(self, user: Principal) -> Optional[UserProfile]:
        return normalize_user_profile(await self._call("getUserProfile", user.to_text()))

    async def update_user_profile(self, user: Principal, profile: UserProfile) -> None:
        await self._call("updateUserProfile", user.to_text(), user_profile_to_wire(profile))

    async def list_all_user_profiles(self) -> List[Tuple[Principal, UserProfile]]:
        pairs = await self._call("listAllUserProfiles") or []
        return [(Principal.from_text(p), normalize_user_profile(raw)) for p, raw in pairs]

    # ------------------------------------------------------------------ #
    # Settings & content
    # ------------------------------------------------------------------ #
    async def get_app_settings(self) -> AppSettings:
        return normalize_app_settings(await self._call("getAppSettings") or {})

    async def update_app_settings(self, settings: AppSettings) -> None:
        await self._call("updateAppSettings", app_settings_to_wire(settings))

    async def get_site_content(self) -> SiteContent:
        return normalize_site_content(await self._call("getSiteContent") or {})

    async def update_site_content(self, content: SiteContent) -> None:
        if content.hero_image is not None:
            await self._upload(content.hero_image)
        for service in content.services:
            if service.icon is not None:
                await self._upload(service.icon)
        await self._call("updateSiteContent", site_content_to_wire(content))

    # ------------------------------------------------------------------ #
    # Visitor analytics
    # ------------------------------------------------------------------ #
    async def record_visitor(self) -> None:
        await self._call("recordVisitor")

    async def get_visitor_count(self) -> int:
        return int(await self._call("getVisitorCount") or 0)
