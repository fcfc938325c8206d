"""
Lead-capture form ("Get a free quote").

Payload (JSON):
    name, email, phone            required
    address, feedback             optional free text
    insurance_interests           list of InsuranceType values
    attachments                   list of {"filename", "content_type"?, "data": base64}

Validation happens before anything is sent to the backend; an oversized or
unsupported attachment never reaches the upload call.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from src.forms.validation import (
    FormValidationError,
    add_error,
    optional_str,
    raise_if_errors,
    require_str,
    validate_email,
    validate_list_ids,
    validate_phone,
)
from src.integrations.contracts.blobs import ExternalBlob
from src.integrations.contracts.interfaces import InsuranceType
from src.services.queries import BackendQueries

logger = logging.getLogger(__name__)

MAX_ATTACHMENT_BYTES = 5 * 1024 * 1024
ALLOWED_EXTENSIONS = {".pdf", ".doc", ".docx", ".jpg", ".jpeg", ".png"}
FILE_TOO_LARGE_MESSAGE = "File is too large. Maximum size is 5MB."
INVALID_ATTACHMENT_MESSAGE = "Each attachment needs a filename and base64 data"


@dataclass
class CustomerFormSubmission:
    name: str
    email: str
    phone: str
    address: str = ""
    feedback: str = ""
    insurance_interests: List[InsuranceType] = field(default_factory=list)


def validate_customer_form(payload: Dict[str, Any]) -> CustomerFormSubmission:
    errors: Dict[str, str] = {}

    name = require_str(payload, "name", errors, label="Name")
    email = validate_email(payload.get("email"), errors)
    phone = validate_phone(payload.get("phone"), errors)
    interests = validate_list_ids(
        payload.get("insurance_interests", payload.get("insuranceInterests")),
        [t.value for t in InsuranceType],
        errors,
        "insurance_interests",
    )

    raise_if_errors(errors)
    return CustomerFormSubmission(
        name=name,
        email=email,
        phone=phone,
        address=optional_str(payload, "address"),
        feedback=optional_str(payload, "feedback"),
        insurance_interests=[InsuranceType(i) for i in interests],
    )


def check_attachment(filename: str, size: int, field_name: str = "attachments") -> None:
    errors: Dict[str, str] = {}
    if size > MAX_ATTACHMENT_BYTES:
        add_error(errors, field_name, FILE_TOO_LARGE_MESSAGE)
    ext = os.path.splitext(filename or "")[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        add_error(errors, field_name, f"Unsupported file type for {filename}. Allowed: PDF, DOC, DOCX, JPG, PNG.")
    raise_if_errors(errors, message=errors.get(field_name, "Invalid attachment"))


def prepare_attachment(
    filename: str,
    data: bytes,
    content_type: Optional[str] = None,
    on_progress: Optional[Callable[[int], None]] = None,
) -> ExternalBlob:
    check_attachment(filename, len(data))
    blob = ExternalBlob.from_bytes(data, filename=filename, content_type=content_type)
    if on_progress is not None:
        blob = blob.with_upload_progress(on_progress)
    return blob


def decode_attachment(item: Any) -> Dict[str, Any]:
    if not isinstance(item, dict):
        raise FormValidationError({"attachments": INVALID_ATTACHMENT_MESSAGE}, message=INVALID_ATTACHMENT_MESSAGE)
    filename = str(item.get("filename") or "").strip()
    try:
        data = base64.b64decode(item.get("data") or "", validate=True)
    except (binascii.Error, ValueError):
        raise FormValidationError(
            {"attachments": f"Failed to process file {filename or 'attachment'}"},
            message=f"Failed to process file {filename or 'attachment'}",
        )
    return {"filename": filename, "data": data, "content_type": item.get("content_type")}


async def submit_customer_form(payload: Dict[str, Any], queries: BackendQueries) -> Dict[str, Any]:
    """Validate, convert attachments to blobs and make a single `submit_form` call."""
    submission = validate_customer_form(payload)

    progress: Dict[str, List[int]] = {}
    documents: List[ExternalBlob] = []
    attachments = payload.get("attachments") or []
    if not isinstance(attachments, list):
        raise FormValidationError({"attachments": INVALID_ATTACHMENT_MESSAGE}, message=INVALID_ATTACHMENT_MESSAGE)
    for raw in attachments:
        item = decode_attachment(raw)
        seen = progress.setdefault(item["filename"], [])
        documents.append(prepare_attachment(item["filename"], item["data"], item["content_type"], seen.append))

    await queries.submit_form(
        name=submission.name,
        phone=submission.phone,
        email=submission.email,
        address=submission.address,
        insurance_interests=submission.insurance_interests,
        feedback=submission.feedback,
        documents=documents,
    )
    logger.info("Customer form submitted: interests=%s documents=%s", [i.value for i in submission.insurance_interests], len(documents))

    return {
        "submitted": True,
        "reset_form": True,
        "upload_progress": {name: pcts[-1] if pcts else 0 for name, pcts in progress.items()},
        "notifications": queries.toaster.drain(),
    }
