"""Validation for the admin sub-pages (settings, content, users, profile)."""

from __future__ import annotations

import base64
import binascii
from typing import Any, Dict, Optional

from src.forms.validation import (
    FormValidationError,
    add_error,
    is_valid_email,
    optional_str,
    raise_if_errors,
    require_bool,
)
from src.integrations.contracts.blobs import ExternalBlob
from src.integrations.contracts.interfaces import AppSettings, SiteContent, UserProfile

MAX_IMAGE_BYTES = 5 * 1024 * 1024
IMAGE_TOO_LARGE_MESSAGE = "Image must be less than 5MB"
ADMINISTRATOR_ROLE = "Administrator"


def validate_settings_update(payload: Dict[str, Any]) -> AppSettings:
    errors: Dict[str, str] = {}
    contact_email = optional_str(payload, "contact_email")
    office_hours = optional_str(payload, "office_hours")
    if not contact_email or not office_hours:
        message = "Contact email and office hours are required"
        if not contact_email:
            add_error(errors, "contact_email", message)
        if not office_hours:
            add_error(errors, "office_hours", message)
        raise_if_errors(errors, message=message)

    maintenance_mode = require_bool(payload, "maintenance_mode", errors, label="Maintenance mode") if "maintenance_mode" in payload else False
    raise_if_errors(errors)
    return AppSettings(office_hours=office_hours, maintenance_mode=maintenance_mode, contact_email=contact_email)


def decode_image(item: Dict[str, Any], field: str = "hero_image") -> ExternalBlob:
    try:
        data = base64.b64decode(item.get("data") or "", validate=True)
    except (binascii.Error, ValueError):
        raise FormValidationError({field: "Failed to upload image"}, message="Failed to upload image")
    if len(data) > MAX_IMAGE_BYTES:
        raise FormValidationError({field: IMAGE_TOO_LARGE_MESSAGE}, message=IMAGE_TOO_LARGE_MESSAGE)
    return ExternalBlob.from_bytes(data, filename=item.get("filename"), content_type=item.get("content_type"))


def validate_content_update(payload: Dict[str, Any], current: Optional[SiteContent]) -> SiteContent:
    """Build the new SiteContent; services and testimonials are carried over from `current`."""
    errors: Dict[str, str] = {}
    home_title = optional_str(payload, "home_title")
    home_description = optional_str(payload, "home_description")
    hero_text = optional_str(payload, "hero_text")
    if not home_title or not home_description or not hero_text:
        message = "Title, description, and hero text are required"
        for field, value in (("home_title", home_title), ("home_description", home_description), ("hero_text", hero_text)):
            if not value:
                add_error(errors, field, message)
        raise_if_errors(errors, message=message)

    hero_image = current.hero_image if current else None
    if payload.get("remove_hero_image"):
        hero_image = None
    elif isinstance(payload.get("hero_image"), dict):
        hero_image = decode_image(payload["hero_image"])

    return SiteContent(
        home_title=home_title,
        home_description=home_description,
        hero_text=hero_text,
        general_info=optional_str(payload, "general_info"),
        hero_image=hero_image,
        services=list(current.services) if current else [],
        testimonials=list(current.testimonials) if current else [],
    )


def validate_user_update(payload: Dict[str, Any]) -> UserProfile:
    name = optional_str(payload, "name")
    email = optional_str(payload, "email")
    role = optional_str(payload, "role")
    if not name or not email or not role:
        errors: Dict[str, str] = {}
        for field, value in (("name", name), ("email", email), ("role", role)):
            if not value:
                add_error(errors, field, "All fields are required")
        raise_if_errors(errors, message="All fields are required")
    return UserProfile(name=name, email=email, role=role)


def validate_profile_setup(payload: Dict[str, Any]) -> UserProfile:
    errors: Dict[str, str] = {}
    name = optional_str(payload, "name")
    email = optional_str(payload, "email")
    if not name:
        add_error(errors, "name", "Please enter your full name")
    if not email:
        add_error(errors, "email", "Please enter your email address")
    elif not is_valid_email(email):
        add_error(errors, "email", "Please enter a valid email address")
    raise_if_errors(errors, message=next(iter(errors.values()), ""))
    return UserProfile(name=name, email=email, role=ADMINISTRATOR_ROLE)
