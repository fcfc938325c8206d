from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from src.integrations.contracts.blobs import ExternalBlob
from src.utils.principal import Principal


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class InsuranceType(str, Enum):
    TRAVEL = "travel"
    LIFE = "life"
    PERSONAL_ACCIDENT = "personalAccident"
    PROPERTY = "property"
    VEHICLE = "vehicle"
    HEALTH = "health"


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"
    GUEST = "guest"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class BackendCallError(Exception):
    """A call reached the backend and was rejected (the backend trapped)."""

    def __init__(self, reject_message: str) -> None:
        super().__init__(f"Call was rejected: {reject_message}")
        self.reject_message = reject_message


class BackendUnavailableError(ConnectionError):
    """The backend could not be reached at all."""


# ---------------------------------------------------------------------------
# Shared data models
# ---------------------------------------------------------------------------

@dataclass
class CustomerForm:
    id: int
    name: str
    phone: str
    email: str
    address: str
    feedback: str
    insurance_interests: List[InsuranceType]
    timestamp: int                       # nanoseconds since epoch
    uploaded_documents: List[ExternalBlob] = field(default_factory=list)


@dataclass
class UserProfile:
    name: str
    email: str
    role: str


@dataclass
class AppSettings:
    office_hours: str
    maintenance_mode: bool
    contact_email: str


@dataclass
class ServiceInfo:
    title: str
    description: str
    icon: Optional[ExternalBlob] = None


@dataclass
class Testimonial:
    client_name: str
    feedback: str
    service_used: str
    rating: int                          # 1..5


@dataclass
class SiteContent:
    home_title: str
    home_description: str
    hero_text: str
    general_info: str
    hero_image: Optional[ExternalBlob] = None
    services: List[ServiceInfo] = field(default_factory=list)
    testimonials: List[Testimonial] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Abstract backend interface
# ---------------------------------------------------------------------------

class BackendActor(ABC):
    """Typed client for the remote backend, bound to one caller identity."""

    @property
    @abstractmethod
    def caller(self) -> Principal:
        """Principal the calls are made as (anonymous when not logged in)."""

    # -- Access control --

    @abstractmethod
    async def admin_login_with_password(self, password: str) -> bool:
        """Grant the caller admin rights if the admin password matches."""

    @abstractmethod
    async def assign_caller_user_role(self, user: Principal, role: UserRole) -> None:
        """Set another principal's role. Admin only."""

    @abstractmethod
    async def initialize_access_control(self, admin_token: str, user_provided_token: str) -> None:
        """Bootstrap access control; makes the caller the first admin when none exists."""

    @abstractmethod
    async def list_admins(self) -> List[Principal]:
        """Return every principal holding the admin role. Admin only."""

    @abstractmethod
    async def get_caller_user_role(self) -> UserRole:
        """Return the caller's role."""

    @abstractmethod
    async def is_caller_admin(self) -> bool:
        """Remote predicate: is the caller an admin."""

    @abstractmethod
    async def reset_admin_password(self, reset_code: str, new_password: str) -> bool:
        """Replace the admin password when the reset code matches."""

    # -- Customer forms --

    @abstractmethod
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
        """Create a customer lead."""

    @abstractmethod
    async def get_all_forms(self) -> List[CustomerForm]:
        """Return every submitted form. Admin only."""

    @abstractmethod
    async def get_form_by_id(self, form_id: int) -> Optional[CustomerForm]:
        """Fetch one form. Admin only."""

    @abstractmethod
    async def get_forms_by_insurance_type(self, insurance_type: InsuranceType) -> List[CustomerForm]:
        """Return forms mentioning the insurance type. Admin only."""

    # -- Profiles --

    @abstractmethod
    async def get_caller_user_profile(self) -> Optional[UserProfile]:
        """Return the caller's own profile, if saved."""

    @abstractmethod
    async def save_caller_user_profile(self, profile: UserProfile) -> None:
        """Create or replace the caller's profile."""

    @abstractmethod
    async def get_user_profile(self, user: Principal) -> Optional[UserProfile]:
        """Fetch another principal's profile."""

    @abstractmethod
    async def update_user_profile(self, user: Principal, profile: UserProfile) -> None:
        """Replace another principal's profile. Admin only."""

    @abstractmethod
    async def list_all_user_profiles(self) -> List[Tuple[Principal, UserProfile]]:
        """Return every saved profile. Admin only."""

    # -- Settings & content --

    @abstractmethod
    async def get_app_settings(self) -> AppSettings:
        """Public; also used as the health check."""

    @abstractmethod
    async def update_app_settings(self, settings: AppSettings) -> None:
        """Admin only."""

    @abstractmethod
    async def get_site_content(self) -> SiteContent:
        """Public homepage copy."""

    @abstractmethod
    async def update_site_content(self, content: SiteContent) -> None:
        """Admin only."""

    # -- Visitor analytics --

    @abstractmethod
    async def record_visitor(self) -> None:
        """Count one homepage visit."""

    @abstractmethod
    async def get_visitor_count(self) -> int:
        """Total recorded visits."""
