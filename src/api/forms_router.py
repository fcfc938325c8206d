"""
Lead-capture form endpoints.

- GET  /forms/options   insurance types and attachment rules for the form UI
- POST /forms           validate and submit a customer form
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, status

from src.api.dependencies import get_public_queries
from src.api.errors import backend_http_error, validation_http_error
from src.forms.customer_form import ALLOWED_EXTENSIONS, MAX_ATTACHMENT_BYTES, submit_customer_form
from src.forms.validation import FormValidationError
from src.integrations.contracts.interfaces import InsuranceType
from src.services.queries import BackendQueries

api = APIRouter()


@api.get("/forms/options", tags=["Forms"])
async def form_options():
    return {
        "insurance_types": [t.value for t in InsuranceType],
        "attachments": {
            "max_bytes": MAX_ATTACHMENT_BYTES,
            "allowed_extensions": sorted(ext.lstrip(".") for ext in ALLOWED_EXTENSIONS),
        },
    }


@api.post("/forms", status_code=status.HTTP_201_CREATED, tags=["Forms"])
async def submit_form(
    payload: Dict[str, Any] = Body(...),
    queries: BackendQueries = Depends(get_public_queries),
):
    try:
        return await submit_customer_form(payload, queries)
    except FormValidationError as e:
        raise validation_http_error(e)
    except Exception as e:
        raise backend_http_error(e, context={"route": "submit_form"}, notifications=queries.toaster.drain())
