"""
Real Identity Provider HTTP Client.

Used when IDENTITY_PROVIDER_URL is configured.
- POST {url}/authenticate {"credential": ...} -> {"principal", "delegation", "expiresAt"}
- POST {url}/verify {"delegation": ...} -> {"principal", "expiresAt"} (401 when invalid)
- POST {url}/revoke {"delegation": ...}
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import httpx

from src.integrations.identity import Identity, IdentityError, IdentityProvider
from src.utils.principal import Principal

logger = logging.getLogger(__name__)


class HttpIdentityProvider(IdentityProvider):
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or os.getenv("IDENTITY_PROVIDER_URL", "")).rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def _post(self, path: str, payload: Dict[str, Any]) -> httpx.Response:
        if not self.base_url:
            raise ValueError("IDENTITY_PROVIDER_URL is not configured.")
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            return await client.post(f"{self.base_url}{path}", json=payload)

    async def authenticate(self, credential: Optional[str] = None) -> Identity:
        response = await self._post("/authenticate", {"credential": credential})
        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.error("Identity provider rejected login: %s %s", response.status_code, detail)
            raise IdentityError(detail or f"Identity provider returned {response.status_code}")
        data = response.json()
        return Identity(
            principal=Principal.from_text(data["principal"]),
            delegation_token=data["delegation"],
            expires_at=float(data["expiresAt"]) if data.get("expiresAt") is not None else None,
        )

    async def resolve(self, delegation_token: str) -> Optional[Identity]:
        response = await self._post("/verify", {"delegation": delegation_token})
        if response.status_code in (401, 403, 404):
            return None
        response.raise_for_status()
        data = response.json()
        identity = Identity(
            principal=Principal.from_text(data["principal"]),
            delegation_token=delegation_token,
            expires_at=float(data["expiresAt"]) if data.get("expiresAt") is not None else None,
        )
        return None if identity.is_expired() else identity

    async def revoke(self, delegation_token: str) -> None:
        response = await self._post("/revoke", {"delegation": delegation_token})
        if response.status_code >= 400 and response.status_code != 404:
            response.raise_for_status()


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)
