"""
Home page model.

Branding and the service cards come from config/site_config.yml. Copy an admin
has edited remotely (SiteContent) replaces the configured text where present,
and AppSettings supplies office hours and the contact address. When the
backend cannot be reached the configured content is served on its own.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from src.integrations.contracts.interfaces import AppSettings, InsuranceType, SiteContent
from src.integrations.response_wrappers import blob_url
from src.utils.config_loader import SiteConfig


def _service_cards(config: SiteConfig, content: Optional[SiteContent]) -> List[Dict[str, Any]]:
    remote = {s.title.strip().lower(): s for s in (content.services if content else [])}
    cards = []
    for card in config.services:
        override = remote.get(card.title.strip().lower())
        cards.append(
            {
                "title": card.title,
                "insurance_type": card.insurance_type.value,
                "description": (override.description if override and override.description else card.description),
                "features": list(card.features),
                "icon": blob_url(override.icon) if override else None,
            }
        )
    return cards


def build_home_page(
    config: SiteConfig,
    settings: Optional[AppSettings] = None,
    content: Optional[SiteContent] = None,
) -> Dict[str, Any]:
    branding = config.branding
    if settings is not None and settings.maintenance_mode:
        return {
            "maintenance": True,
            "message": config.maintenance.message,
            "company": branding.company.model_dump(),
            "contact": {**branding.contact.model_dump(), "email": settings.contact_email or branding.contact.email},
        }

    hero = {
        "title": branding.company.name,
        "tagline": branding.company.tagline,
        "description": branding.company.description,
        "image": None,
    }
    general_info = ""
    testimonials: List[Dict[str, Any]] = []
    if content is not None:
        hero["title"] = content.home_title or hero["title"]
        hero["tagline"] = content.hero_text or hero["tagline"]
        hero["description"] = content.home_description or hero["description"]
        hero["image"] = blob_url(content.hero_image)
        general_info = content.general_info
        testimonials = [
            {
                "client_name": t.client_name,
                "feedback": t.feedback,
                "service_used": t.service_used,
                "rating": t.rating,
            }
            for t in content.testimonials
        ]

    contact = branding.contact.model_dump()
    if settings is not None:
        contact["email"] = settings.contact_email or contact["email"]
        contact["office_hours"] = settings.office_hours

    return {
        "maintenance": False,
        "logo": branding.logo.model_dump(),
        "company": branding.company.model_dump(),
        "hero": hero,
        "general_info": general_info,
        "services": _service_cards(config, content),
        "testimonials": testimonials,
        "contact": contact,
        "insurance_types": [t.value for t in InsuranceType],
    }
