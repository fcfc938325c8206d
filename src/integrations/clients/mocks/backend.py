"""
In-memory backend: MOCK client.

⚠️  This stands in for the hosted backend during development and tests.
    `InMemoryCanister` holds the state a real deployment keeps remotely;
    `MockBackendActor` binds a caller principal to it and enforces the same
    access rules the remote service does, rejecting calls with the same
    "Call was rejected: ..." messages.
    Nothing here makes network calls.
"""

import hashlib
import logging
import time
from collections import Counter
from typing import Callable, Dict, List, Optional, Tuple

from src.integrations.contracts.blobs import ExternalBlob
from src.integrations.contracts.interfaces import (
    AppSettings,
    BackendActor,
    BackendCallError,
    BackendUnavailableError,
    CustomerForm,
    InsuranceType,
    ServiceInfo,
    SiteContent,
    UserProfile,
    UserRole,
)
from src.utils.principal import Principal

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

DEFAULT_APP_SETTINGS = AppSettings(
    office_hours="Mon - Sat, 9:00 AM - 6:00 PM",
    maintenance_mode=False,
    contact_email="support@gbinsurance.in",
)

DEFAULT_SITE_CONTENT = SiteContent(
    home_title="GB Insurance",
    home_description="Your trusted partner for comprehensive insurance solutions across India.",
    hero_text="Har Mushkil Mein, Apno Jaisa Saath.",
    general_info="Talk to our advisors for a free, no-obligation quote.",
    services=[
        ServiceInfo(title="Life Insurance", description="Secure your family's future with comprehensive life coverage plans."),
        ServiceInfo(title="Health Insurance", description="Complete medical coverage for you and your loved ones."),
        ServiceInfo(title="Vehicle Insurance", description="Protect your vehicle with comprehensive motor insurance."),
    ],
)

DEFAULT_ADMIN_PASSWORD = "change-me"
DEFAULT_RESET_CODE = "GB-RESET-0000"


class InMemoryCanister:
    """Process-local backend state shared by every mock actor."""

    def __init__(
        self,
        *,
        admin_password: str = DEFAULT_ADMIN_PASSWORD,
        reset_code: str = DEFAULT_RESET_CODE,
        blob_base_url: str = "/blobs",
        clock_ns: Callable[[], int] = time.time_ns,
    ) -> None:
        self.admin_password = admin_password
        self.reset_code = reset_code
        self.blob_base_url = blob_base_url.rstrip("/")
        self.clock_ns = clock_ns

        self.forms: Dict[int, CustomerForm] = {}
        self.next_form_id = 1
        self.profiles: Dict[Principal, UserProfile] = {}
        self.roles: Dict[Principal, UserRole] = {}
        self.settings = AppSettings(**vars(DEFAULT_APP_SETTINGS))
        self.site_content = SiteContent(
            home_title=DEFAULT_SITE_CONTENT.home_title,
            home_description=DEFAULT_SITE_CONTENT.home_description,
            hero_text=DEFAULT_SITE_CONTENT.hero_text,
            general_info=DEFAULT_SITE_CONTENT.general_info,
            services=list(DEFAULT_SITE_CONTENT.services),
        )
        self.blobs: Dict[str, bytes] = {}
        self.visitor_count = 0

        # Test hooks: flip `available` to simulate an outage; `calls` counts method invocations.
        self.available = True
        self.calls: Counter = Counter()

    def actor_for(self, principal: Optional[Principal] = None) -> "MockBackendActor":
        return MockBackendActor(self, principal or Principal.anonymous())

    def admins(self) -> List[Principal]:
        return [p for p, role in self.roles.items() if role == UserRole.ADMIN]

    def store_blob(self, blob: ExternalBlob) -> ExternalBlob:
        if blob.is_uploaded:
            return blob
        data = b"".join(blob.iter_upload_chunks())
        digest = hashlib.sha256(data).hexdigest()
        self.blobs[digest] = data
        blob.mark_uploaded(f"{self.blob_base_url}/{digest}")
        return blob


class MockBackendActor(BackendActor):
    def __init__(self, canister: InMemoryCanister, principal: Principal) -> None:
        self._canister = canister
        self._principal = principal

    @property
    def caller(self) -> Principal:
        return self._principal

    # ------------------------------------------------------------------ #
    # Guards
    # ------------------------------------------------------------------ #
    def _enter(self, method: str) -> None:
        self._canister.calls[method] += 1
        if not self._canister.available:
            raise BackendUnavailableError("Backend unreachable: connection refused")

    def _is_admin(self) -> bool:
        return self._canister.roles.get(self._principal) == UserRole.ADMIN

    def _require_admin(self) -> None:
        if not self._is_admin():
            raise BackendCallError("Unauthorized: Only admins can perform this action")

    def _require_user(self) -> None:
        if self._principal.is_anonymous():
            raise BackendCallError("Unauthorized: Anonymous callers cannot perform this action")

    # ------------------------------------------------------------------ #
    # Access control
    # ------------------------------------------------------------------ #
    async def admin_login_with_password(self, password: str) -> bool:
        self._enter("admin_login_with_password")
        self._require_user()
        if password != self._canister.admin_password:
            logger.info("[MOCK] Admin password login rejected for %s", self._principal)
            return False
        self._canister.roles[self._principal] = UserRole.ADMIN
        return True

    async def assign_caller_user_role(self, user: Principal, role: UserRole) -> None:
        self._enter("assign_caller_user_role")
        self._require_admin()
        if user.is_anonymous():
            raise BackendCallError("Invalid principal: cannot assign a role to the anonymous principal")
        self._canister.roles[user] = UserRole(role)

    async def initialize_access_control(self, admin_token: str, user_provided_token: str) -> None:
        self._enter("initialize_access_control")
        self._require_user()
        if not self._canister.admins():
            logger.info("[MOCK] Bootstrapping first admin: %s", self._principal)
            self._canister.roles[self._principal] = UserRole.ADMIN
        elif self._principal not in self._canister.roles:
            self._canister.roles[self._principal] = UserRole.USER

    async def list_admins(self) -> List[Principal]:
        self._enter("list_admins")
        self._require_admin()
        return self._canister.admins()

    async def get_caller_user_role(self) -> UserRole:
        self._enter("get_caller_user_role")
        return self._canister.roles.get(self._principal, UserRole.GUEST)

    async def is_caller_admin(self) -> bool:
        self._enter("is_caller_admin")
        return self._is_admin()

    async def reset_admin_password(self, reset_code: str, new_password: str) -> bool:
        self._enter("reset_admin_password")
        self._require_user()
        if reset_code != self._canister.reset_code or not new_password:
            return False
        self._canister.admin_password = new_password
        return True

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
        self._enter("submit_form")
        if not name.strip() or not email.strip():
            raise BackendCallError("Invalid form: name and email are required")

        stored = [self._canister.store_blob(doc) for doc in documents]
        form = CustomerForm(
            id=self._canister.next_form_id,
            name=name,
            phone=phone,
            email=email,
            address=address,
            feedback=feedback,
            insurance_interests=[InsuranceType(i) for i in interests],
            timestamp=self._canister.clock_ns(),
            uploaded_documents=stored,
        )
        self._canister.forms[form.id] = form
        self._canister.next_form_id += 1

    async def get_all_forms(self) -> List[CustomerForm]:
        self._enter("get_all_forms")
        self._require_admin()
        return list(self._canister.forms.values())

    async def get_form_by_id(self, form_id: int) -> Optional[CustomerForm]:
        self._enter("get_form_by_id")
        self._require_admin()
        return self._canister.forms.get(int(form_id))

    async def get_forms_by_insurance_type(self, insurance_type: InsuranceType) -> List[CustomerForm]:
        self._enter("get_forms_by_insurance_type")
        self._require_admin()
        wanted = InsuranceType(insurance_type)
        return [f for f in self._canister.forms.values() if wanted in f.insurance_interests]

    # ------------------------------------------------------------------ #
    # Profiles
    # ------------------------------------------------------------------ #
    async def get_caller_user_profile(self) -> Optional[UserProfile]:
        self._enter("get_caller_user_profile")
        return self._canister.profiles.get(self._principal)

    async def save_caller_user_profile(self, profile: UserProfile) -> None:
        self._enter("save_caller_user_profile")
        self._require_user()
        self._canister.profiles[self._principal] = UserProfile(**vars(profile))
        self._canister.roles.setdefault(self._principal, UserRole.USER)

    async def get_user_profile(self, user: Principal) -> Optional[UserProfile]:
        self._enter("get_user_profile")
        if user != self._principal:
            self._require_admin()
        return self._canister.profiles.get(user)

    async def update_user_profile(self, user: Principal, profile: UserProfile) -> None:
        self._enter("update_user_profile")
        self._require_admin()
        self._canister.profiles[user] = UserProfile(**vars(profile))

    async def list_all_user_profiles(self) -> List[Tuple[Principal, UserProfile]]:
        self._enter("list_all_user_profiles")
        self._require_admin()
        return list(self._canister.profiles.items())

    # ------------------------------------------------------------------ #
    # Settings & content
    # ------------------------------------------------------------------ #
    async def get_app_settings(self) -> AppSettings:
        self._enter("get_app_settings")
        return AppSettings(**vars(self._canister.settings))

    async def update_app_settings(self, settings: AppSettings) -> None:
        self._enter("update_app_settings")
        self._require_admin()
        self._canister.settings = AppSettings(**vars(settings))

    async def get_site_content(self) -> SiteContent:
        self._enter("get_site_content")
        return self._canister.site_content

    async def update_site_content(self, content: SiteContent) -> None:
        self._enter("update_site_content")
        self._require_admin()
        if content.hero_image is not None:
            self._canister.store_blob(content.hero_image)
        for service in content.services:
            if service.icon is not None:
                self._canister.store_blob(service.icon)
        self._canister.site_content = content

    # ------------------------------------------------------------------ #
    # Visitor analytics
    # ------------------------------------------------------------------ #
    async def record_visitor(self) -> None:
        self._enter("record_visitor")
        self._canister.visitor_count += 1

    async def get_visitor_count(self) -> int:
        self._enter("get_visitor_count")
        return self._canister.visitor_count
