"""Error handling helpers for backend calls.

Backend failures reach us as plain exceptions (rejections from the remote
service, transport errors, timeouts). `categorize_backend_error` classifies
them by message so the API and the admin flows can show a consistent,
user-friendly message and decide whether a retry makes sense.
"""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from src.forms.validation import FormValidationError

logger = logging.getLogger(__name__)


class BackendErrorCategory(str, Enum):
    TRAP = "trap"
    UNAUTHORIZED = "unauthorized"
    VALIDATION = "validation"
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    UNKNOWN = "unknown"


UNAUTHORIZED_MESSAGE = (
    "You must be authenticated to perform this action. "
    "Please sign in with the identity provider first."
)
TIMEOUT_MESSAGE = "The request timed out. Please check your connection and try again."
UNREACHABLE_MESSAGE = "Unable to reach the backend. Please check your internet connection and try again."
UNKNOWN_MESSAGE = "An unexpected error occurred. Please try again."

_TRAP_PATTERNS = [
    re.compile(r"trap:\s*(.+)", re.IGNORECASE),
    re.compile(r"rejected:\s*(.+)", re.IGNORECASE),
    re.compile(r"error:\s*(.+)", re.IGNORECASE),
]
_TRAP_PREFIXES = [
    re.compile(r"^IC\d+:\s*", re.IGNORECASE),
    re.compile(r"^Call was rejected:\s*", re.IGNORECASE),
]


@dataclass
class CategorizedError:
    category: BackendErrorCategory
    message: str
    original_error: BaseException
    can_retry: bool


def extract_trap_message(raw_message: str) -> str:
    """Pull the human part out of a rejection message."""
    for pattern in _TRAP_PATTERNS:
        match = pattern.search(raw_message)
        if match and match.group(1).strip():
            return match.group(1).strip()

    cleaned = raw_message
    for prefix in _TRAP_PREFIXES:
        cleaned = prefix.sub("", cleaned)
    return cleaned.strip()


def _status_code(error: BaseException) -> Optional[int]:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return None


def categorize_backend_error(error: Any) -> CategorizedError:
    err = error if isinstance(error, BaseException) else Exception(str(error))
    raw = str(err)
    text = raw.lower()

    if "trap" in text or "rejected" in text:
        return CategorizedError(BackendErrorCategory.TRAP, extract_trap_message(raw), err, False)

    if (
        _status_code(err) in (401, 403)
        or "unauthorized" in text
        or "not authorized" in text
        or "permission denied" in text
        or "anonymous" in text
    ):
        return CategorizedError(BackendErrorCategory.UNAUTHORIZED, UNAUTHORIZED_MESSAGE, err, False)

    if isinstance(err, FormValidationError):
        return CategorizedError(BackendErrorCategory.VALIDATION, err.message, err, False)
    if "validation" in text or "invalid" in text or "is required" in text:
        return CategorizedError(BackendErrorCategory.VALIDATION, raw, err, False)

    if (
        isinstance(err, (asyncio.TimeoutError, httpx.TimeoutException))
        or "timeout" in text
        or "timed out" in text
    ):
        return CategorizedError(BackendErrorCategory.TIMEOUT, TIMEOUT_MESSAGE, err, True)

    if (
        isinstance(err, httpx.TransportError)
        or "network" in text
        or "fetch" in text
        or "connection" in text
        or "unreachable" in text
    ):
        return CategorizedError(BackendErrorCategory.UNREACHABLE, UNREACHABLE_MESSAGE, err, True)

    return CategorizedError(BackendErrorCategory.UNKNOWN, raw or UNKNOWN_MESSAGE, err, True)


def get_user_friendly_error_message(error: Any) -> str:
    return categorize_backend_error(error).message


def is_retryable_error(error: Any) -> bool:
    return categorize_backend_error(error).can_retry


def status_code_for(categorized: CategorizedError) -> int:
    """HTTP status used when a categorized backend error reaches the API edge."""
    if categorized.category == BackendErrorCategory.TRAP:
        return 403 if "unauthorized" in categorized.message.lower() else 400
    return {
        BackendErrorCategory.UNAUTHORIZED: 401,
        BackendErrorCategory.VALIDATION: 422,
        BackendErrorCategory.TIMEOUT: 504,
        BackendErrorCategory.UNREACHABLE: 502,
    }.get(categorized.category, 500)


class ErrorHandler:
    def handle_exception(self, exc: Exception, context: Dict[str, Any] = None) -> Dict[str, Any]:
        categorized = categorize_backend_error(exc)
        if categorized.category == BackendErrorCategory.UNKNOWN:
            logger.error("Unhandled exception in backend call: %s", exc, exc_info=True)
        else:
            logger.warning("Backend call failed (%s): %s", categorized.category.value, exc)
        return {
            "error": categorized.category.value,
            "message": categorized.message,
            "can_retry": categorized.can_retry,
            "metadata": {"error": str(exc), "context": context or {}},
        }
