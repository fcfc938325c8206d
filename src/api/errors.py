"""Turn service-layer exceptions into HTTP errors."""

from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status

from src.error_handler import ErrorHandler, categorize_backend_error, status_code_for
from src.forms.validation import FormValidationError

error_handler = ErrorHandler()


def validation_http_error(e: FormValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={
            "error": "validation_error",
            "message": e.message,
            "field_errors": e.field_errors,
        },
    )


def backend_http_error(
    exc: Exception,
    *,
    context: Optional[Dict[str, Any]] = None,
    notifications: Optional[List[Dict[str, Any]]] = None,
) -> HTTPException:
    if isinstance(exc, FormValidationError):
        return validation_http_error(exc)
    payload = error_handler.handle_exception(exc, context=context)
    if notifications:
        payload["notifications"] = notifications
    return HTTPException(status_code=status_code_for(categorize_backend_error(exc)), detail=payload)
