"""Identity normalization.

Maps each provider's user-info payload onto one canonical OAuthUser.
GitHub keys off ``login``; Google and OIDC key off ``email``. A missing or
malformed key field is a hard failure, never a default.
"""

from dataclasses import dataclass, field
from typing import Any


class IdentityParseError(ValueError):
    """Provider payload lacks a usable primary identifier."""


@dataclass
class OAuthUser:
    """Canonical identity for the duration of one callback."""

    primary_identifier: str  # GitHub login or email address
    access_token: str = field(default="", repr=False)  # JSON-serialized token response
    raw_claims: dict[str, Any] = field(default_factory=dict)


def _require_str(payload: Any, key: str) -> str:
    if not isinstance(payload, dict):
        raise IdentityParseError(f"expected a JSON object, got {type(payload).__name__}")
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise IdentityParseError(f"missing or malformed '{key}' field")
    return value


def normalize_github(payload: Any) -> OAuthUser:
    return OAuthUser(primary_identifier=_require_str(payload, "login"), raw_claims=dict(payload))


def normalize_google(payload: Any) -> OAuthUser:
    return OAuthUser(primary_identifier=_require_str(payload, "email"), raw_claims=dict(payload))


def normalize_oidc(claims: Any) -> OAuthUser:
    return OAuthUser(primary_identifier=_require_str(claims, "email"), raw_claims=dict(claims))
