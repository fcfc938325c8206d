import asyncio

import httpx
import pytest

from src.error_handler import (
    TIMEOUT_MESSAGE,
    UNAUTHORIZED_MESSAGE,
    UNREACHABLE_MESSAGE,
    BackendErrorCategory,
    ErrorHandler,
    categorize_backend_error,
    extract_trap_message,
    get_user_friendly_error_message,
    is_retryable_error,
    status_code_for,
)
from src.forms.validation import FormValidationError
from src.integrations.contracts.interfaces import BackendCallError, BackendUnavailableError


def test_handle_exception_returns_payload():
    eh = ErrorHandler()
    out = eh.handle_exception(Exception("boom"), context={"k": "v"})
    assert out["error"] == "unknown"
    assert out["message"] == "boom"
    assert out["can_retry"] is True
    assert out["metadata"] == {"error": "boom", "context": {"k": "v"}}


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Call was rejected: Unauthorized: Only admins can perform this action", "Unauthorized: Only admins can perform this action"),
        ("Canister trapped: trap: Form not found", "Form not found"),
        ("IC0503: something odd", "something odd"),
    ],
)
def test_extract_trap_message(raw, expected):
    assert extract_trap_message(raw) == expected


def test_rejections_are_traps_and_not_retryable():
    err = BackendCallError("Unauthorized: Only admins can perform this action")
    categorized = categorize_backend_error(err)

    assert categorized.category == BackendErrorCategory.TRAP
    assert categorized.message == "Unauthorized: Only admins can perform this action"
    assert categorized.can_retry is False
    assert status_code_for(categorized) == 403
    assert status_code_for(categorize_backend_error(BackendCallError("Invalid form"))) == 400


def test_unauthorized_by_message_or_status():
    request = httpx.Request("POST", "https://backend.test/call/getAllForms")
    response = httpx.Response(401, request=request)
    http_err = httpx.HTTPStatusError("401", request=request, response=response)

    for err in (PermissionError("Anonymous caller"), http_err):
        categorized = categorize_backend_error(err)
        assert categorized.category == BackendErrorCategory.UNAUTHORIZED
        assert categorized.message == UNAUTHORIZED_MESSAGE
        assert status_code_for(categorized) == 401


def test_validation_errors():
    categorized = categorize_backend_error(FormValidationError({"email": "bad"}, message="Email is bad"))
    assert categorized.category == BackendErrorCategory.VALIDATION
    assert categorized.message == "Email is bad"
    assert status_code_for(categorized) == 422


def test_timeouts_and_unreachable_are_retryable():
    assert categorize_backend_error(asyncio.TimeoutError()).message == TIMEOUT_MESSAGE
    assert categorize_backend_error(httpx.ReadTimeout("slow")).category == BackendErrorCategory.TIMEOUT

    for err in (BackendUnavailableError("connection refused"), httpx.ConnectError("dns")):
        categorized = categorize_backend_error(err)
        assert categorized.category == BackendErrorCategory.UNREACHABLE
        assert categorized.message == UNREACHABLE_MESSAGE
        assert status_code_for(categorized) == 502

    assert is_retryable_error(asyncio.TimeoutError()) is True
    assert status_code_for(categorize_backend_error(asyncio.TimeoutError())) == 504


def test_non_exception_values_are_accepted():
    assert get_user_friendly_error_message("network down") == UNREACHABLE_MESSAGE
    assert categorize_backend_error("").message == "An unexpected error occurred. Please try again."
