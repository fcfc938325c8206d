"""
Principal parsing, validation and display helpers.

A principal is the opaque identity reference issued by the identity provider.
Its textual form is ``base32(crc32(raw) || raw)``, lowercased, without padding
and grouped in blocks of five characters separated by dashes.
"""

from __future__ import annotations

import base64
import hashlib
import zlib
from dataclasses import dataclass
from typing import Optional

_MAX_PRINCIPAL_BYTES = 29
_ANONYMOUS_SUFFIX = 0x04
_SELF_AUTHENTICATING_SUFFIX = 0x02


class PrincipalError(ValueError):
    pass


@dataclass(frozen=True)
class Principal:
    raw: bytes

    @classmethod
    def anonymous(cls) -> "Principal":
        return cls(bytes([_ANONYMOUS_SUFFIX]))

    @classmethod
    def self_authenticating(cls, public_key: bytes) -> "Principal":
        """Derive a principal from a public key (sha224 digest plus the 0x02 tag)."""
        return cls(hashlib.sha224(public_key).digest() + bytes([_SELF_AUTHENTICATING_SUFFIX]))

    @classmethod
    def from_text(cls, text: str) -> "Principal":
        canonical = (text or "").strip().lower()
        compact = canonical.replace("-", "")
        if not compact:
            raise PrincipalError("Principal text is empty")

        padding = "=" * (-len(compact) % 8)
        try:
            decoded = base64.b32decode(compact.upper() + padding)
        except (ValueError, TypeError) as exc:
            raise PrincipalError(f"Principal text is not valid base32: {text}") from exc

        if len(decoded) < 4:
            raise PrincipalError("Principal text is too short")

        checksum, raw = decoded[:4], decoded[4:]
        if len(raw) > _MAX_PRINCIPAL_BYTES:
            raise PrincipalError("Principal is too long")
        if zlib.crc32(raw).to_bytes(4, "big") != checksum:
            raise PrincipalError("Principal checksum does not match")

        principal = cls(raw)
        if principal.to_text() != canonical:
            raise PrincipalError(f"Principal text is not in canonical form: {text}")
        return principal

    def to_text(self) -> str:
        checksum = zlib.crc32(self.raw).to_bytes(4, "big")
        encoded = base64.b32encode(checksum + self.raw).decode("ascii").lower().rstrip("=")
        return "-".join(encoded[i:i + 5] for i in range(0, len(encoded), 5))

    def is_anonymous(self) -> bool:
        return self.raw == bytes([_ANONYMOUS_SUFFIX])

    def __str__(self) -> str:
        return self.to_text()


@dataclass
class PrincipalValidationResult:
    is_valid: bool
    principal: Optional[Principal] = None
    error: Optional[str] = None


def validate_principal(principal_text: str) -> PrincipalValidationResult:
    """Validate and parse principal text entered by an admin."""
    if not principal_text or not principal_text.strip():
        return PrincipalValidationResult(is_valid=False, error="Principal cannot be empty")

    try:
        principal = Principal.from_text(principal_text.strip())
    except PrincipalError:
        return PrincipalValidationResult(
            is_valid=False,
            error="Invalid principal format. Please check the principal ID and try again.",
        )

    if principal.is_anonymous():
        return PrincipalValidationResult(is_valid=False, error="Cannot use anonymous principal")

    return PrincipalValidationResult(is_valid=True, principal=principal)


def format_principal(principal: Principal, max_length: int = 20) -> str:
    """Shorten a principal for display, keeping its head and tail."""
    text = principal.to_text()
    if len(text) <= max_length:
        return text
    keep = max_length // 2 - 2
    return f"{text[:keep]}...{text[-keep:]}"
