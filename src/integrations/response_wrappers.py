"""
Wire-format normalization for backend records.

The backend gateway speaks camelCase JSON with 64-bit integers sent as strings.
Everything coming back from the real HTTP actor goes through these helpers so
callers only ever see the dataclasses from `contracts.interfaces`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from src.integrations.contracts.blobs import ExternalBlob
from src.integrations.contracts.interfaces import (
    AppSettings,
    CustomerForm,
    InsuranceType,
    ServiceInfo,
    SiteContent,
    Testimonial,
    UserProfile,
)


class IntegrationResponseError(ValueError):
    def __init__(self, message: str, *, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.payload = payload or {}


class CustomerFormModel(BaseModel):
    id: int
    name: str
    phone: str = ""
    email: str
    address: str = ""
    feedback: str = ""
    insurance_interests: List[InsuranceType] = Field(default_factory=list)
    timestamp: int
    uploaded_documents: List[str] = Field(default_factory=list)

    @field_validator("uploaded_documents", mode="before")
    @classmethod
    def _document_urls(cls, value: Any) -> List[str]:
        urls = []
        for item in value or []:
            if isinstance(item, dict):
                item = item.get("url") or item.get("directUrl")
            if item:
                urls.append(str(item))
        return urls


class UserProfileModel(BaseModel):
    name: str
    email: str
    role: str


class AppSettingsModel(BaseModel):
    office_hours: str
    maintenance_mode: bool = False
    contact_email: str


class TestimonialModel(BaseModel):
    client_name: str
    feedback: str
    service_used: str = ""
    rating: int = Field(default=5, ge=1, le=5)


class ServiceInfoModel(BaseModel):
    title: str
    description: str
    icon: Optional[str] = None


class SiteContentModel(BaseModel):
    home_title: str
    home_description: str
    hero_text: str
    general_info: str = ""
    hero_image: Optional[str] = None
    services: List[ServiceInfoModel] = Field(default_factory=list)
    testimonials: List[TestimonialModel] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Inbound: wire -> records
# ---------------------------------------------------------------------------

def normalize_customer_form(raw: Dict[str, Any]) -> CustomerForm:
    payload = {
        "id": _first_non_empty(raw, "id", "formId"),
        "name": _first_non_empty(raw, "name"),
        "phone": _first_non_empty(raw, "phone", default=""),
        "email": _first_non_empty(raw, "email"),
        "address": _first_non_empty(raw, "address", default=""),
        "feedback": _first_non_empty(raw, "feedback", default=""),
        "insurance_interests": _first_non_empty(raw, "insuranceInterests", "insurance_interests", default=[]),
        "timestamp": _first_non_empty(raw, "timestamp", "createdAt"),
        "uploaded_documents": _first_non_empty(raw, "uploadedDocuments", "uploaded_documents", default=[]),
    }
    model = _build_model(CustomerFormModel, payload, raw)
    return CustomerForm(
        id=model.id,
        name=model.name,
        phone=model.phone,
        email=model.email,
        address=model.address,
        feedback=model.feedback,
        insurance_interests=list(model.insurance_interests),
        timestamp=model.timestamp,
        uploaded_documents=[ExternalBlob.from_url(url) for url in model.uploaded_documents],
    )


def normalize_user_profile(raw: Optional[Dict[str, Any]]) -> Optional[UserProfile]:
    if not raw:
        return None
    model = _build_model(UserProfileModel, raw, raw)
    return UserProfile(name=model.name, email=model.email, role=model.role)


def normalize_app_settings(raw: Dict[str, Any]) -> AppSettings:
    payload = {
        "office_hours": _first_non_empty(raw, "officeHours", "office_hours"),
        "maintenance_mode": bool(raw.get("maintenanceMode", raw.get("maintenance_mode", False))),
        "contact_email": _first_non_empty(raw, "contactEmail", "contact_email"),
    }
    model = _build_model(AppSettingsModel, payload, raw)
    return AppSettings(
        office_hours=model.office_hours,
        maintenance_mode=model.maintenance_mode,
        contact_email=model.contact_email,
    )


def normalize_site_content(raw: Dict[str, Any]) -> SiteContent:
    payload = {
        "home_title": _first_non_empty(raw, "homeTitle", "home_title"),
        "home_description": _first_non_empty(raw, "homeDescription", "home_description"),
        "hero_text": _first_non_empty(raw, "heroText", "hero_text"),
        "general_info": raw.get("generalInfo", raw.get("general_info")) or "",
        "hero_image": raw.get("heroImage", raw.get("hero_image")) or None,
        "services": [
            {"title": s.get("title"), "description": s.get("description"), "icon": s.get("icon") or None}
            for s in raw.get("services") or []
        ],
        "testimonials": [
            {
                "client_name": t.get("clientName", t.get("client_name")),
                "feedback": t.get("feedback"),
                "service_used": t.get("serviceUsed", t.get("service_used")) or "",
                "rating": t.get("rating", 5),
            }
            for t in raw.get("testimonials") or []
        ],
    }
    model = _build_model(SiteContentModel, payload, raw)
    return SiteContent(
        home_title=model.home_title,
        home_description=model.home_description,
        hero_text=model.hero_text,
        general_info=model.general_info,
        hero_image=ExternalBlob.from_url(model.hero_image) if model.hero_image else None,
        services=[
            ServiceInfo(
                title=s.title,
                description=s.description,
                icon=ExternalBlob.from_url(s.icon) if s.icon else None,
            )
            for s in model.services
        ],
        testimonials=[
            Testimonial(client_name=t.client_name, feedback=t.feedback, service_used=t.service_used, rating=t.rating)
            for t in model.testimonials
        ],
    )


# ---------------------------------------------------------------------------
# Outbound: records -> wire
# ---------------------------------------------------------------------------

def blob_url(blob: Optional[ExternalBlob]) -> Optional[str]:
    return blob.get_direct_url() if blob is not None else None


def customer_form_to_wire(form: CustomerForm) -> Dict[str, Any]:
    return {
        "id": str(form.id),
        "name": form.name,
        "phone": form.phone,
        "email": form.email,
        "address": form.address,
        "feedback": form.feedback,
        "insuranceInterests": [i.value for i in form.insurance_interests],
        "timestamp": str(form.timestamp),
        "uploadedDocuments": [blob_url(b) for b in form.uploaded_documents],
    }


def user_profile_to_wire(profile: UserProfile) -> Dict[str, Any]:
    return {"name": profile.name, "email": profile.email, "role": profile.role}


def app_settings_to_wire(settings: AppSettings) -> Dict[str, Any]:
    return {
        "officeHours": settings.office_hours,
        "maintenanceMode": settings.maintenance_mode,
        "contactEmail": settings.contact_email,
    }


def site_content_to_wire(content: SiteContent) -> Dict[str, Any]:
    return {
        "homeTitle": content.home_title,
        "homeDescription": content.home_description,
        "heroText": content.hero_text,
        "generalInfo": content.general_info,
        "heroImage": blob_url(content.hero_image),
        "services": [
            {"title": s.title, "description": s.description, "icon": blob_url(s.icon)}
            for s in content.services
        ],
        "testimonials": [
            {
                "clientName": t.client_name,
                "feedback": t.feedback,
                "serviceUsed": t.service_used,
                "rating": str(t.rating),
            }
            for t in content.testimonials
        ],
    }


def _first_non_empty(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    if default is not None:
        return default
    raise IntegrationResponseError(f"Missing required field. Checked keys: {', '.join(keys)}", payload=data)


def _build_model(model_type, payload: Dict[str, Any], raw: Dict[str, Any]):
    try:
        return model_type(**payload)
    except ValidationError as exc:
        raise IntegrationResponseError(f"Response validation failed: {exc}", payload=raw) from exc
