"""Fake identity providers served over httpx.MockTransport.

One transport answers for GitHub, Google and an OIDC issuer so each
adapter's real HTTP code paths run without network access. ID tokens are
signed with an RSA key generated once per session.
"""

import time
from typing import Any

import httpx
import pytest
from authlib.jose import JsonWebKey
from authlib.jose import jwt as authlib_jwt

from ssobridge.auth.providers.github import GitHubProvider
from ssobridge.auth.providers.google import GoogleProvider
from ssobridge.auth.providers.oidc import OIDCProvider

ISSUER = "https://idp.example.com"
CLIENT_ID = "bridge-client"
CLIENT_SECRET = "bridge-secret"
REDIRECT_URL = "https://bridge.example.com/callback"


@pytest.fixture(scope="session")
def signing_key():
    return JsonWebKey.generate_key("RSA", 2048, is_private=True, options={"kid": "test-key"})


@pytest.fixture(scope="session")
def rogue_key():
    return JsonWebKey.generate_key("RSA", 2048, is_private=True, options={"kid": "test-key"})


def sign_id_token(key: Any, **overrides: Any) -> str:
    now = int(time.time())
    claims = {
        "iss": ISSUER,
        "aud": CLIENT_ID,
        "sub": "user-1",
        "email": "carol@example.com",
        "iat": now,
        "exp": now + 300,
    }
    claims.update(overrides)
    claims = {k: v for k, v in claims.items() if v is not None}
    header = {"alg": "RS256", "kid": key.as_dict(is_private=False)["kid"]}
    return authlib_jwt.encode(header, claims, key).decode()


class FakeIdP:
    """Routes requests by host and records them."""

    def __init__(self, signing_key: Any) -> None:
        self.signing_key = signing_key
        self.requests: list[httpx.Request] = []
        self.github_user: Any = {"login": "alice", "id": 1}
        self.google_user: Any = {"email": "bob@example.com", "verified_email": True}
        self.token_payload: dict[str, Any] | None = None
        self.token_status = 200
        self.id_token: str | None = None
        self.discovery_error: Exception | None = None

    def _token_response(self, include_id_token: bool) -> httpx.Response:
        if self.token_payload is not None:
            return httpx.Response(self.token_status, json=self.token_payload)
        payload: dict[str, Any] = {
            "access_token": "at-123",
            "token_type": "bearer",
            "expires_in": 3600,
        }
        if include_id_token:
            payload["id_token"] = self.id_token or sign_id_token(self.signing_key)
        return httpx.Response(self.token_status, json=payload)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host, path = request.url.host, request.url.path

        if host == "github.com" and path == "/login/oauth/access_token":
            return self._token_response(include_id_token=False)
        if host == "api.github.com" and path == "/user":
            return httpx.Response(200, json=self.github_user)

        if host == "oauth2.googleapis.com" and path == "/token":
            return self._token_response(include_id_token=False)
        if host == "www.googleapis.com" and path == "/oauth2/v2/userinfo":
            return httpx.Response(200, json=self.google_user)

        if host == "idp.example.com":
            if path.endswith("/.well-known/openid-configuration"):
                if self.discovery_error is not None:
                    raise self.discovery_error
                return httpx.Response(
                    200,
                    json={
                        "issuer": ISSUER,
                        "authorization_endpoint": f"{ISSUER}/authorize",
                        "token_endpoint": f"{ISSUER}/token",
                        "userinfo_endpoint": f"{ISSUER}/userinfo",
                        "jwks_uri": f"{ISSUER}/jwks",
                    },
                )
            if path == "/jwks":
                return httpx.Response(
                    200, json={"keys": [self.signing_key.as_dict(is_private=False)]}
                )
            if path == "/token":
                return self._token_response(include_id_token=True)

        return httpx.Response(404, json={"error": "not_found"})

    def paths(self) -> list[str]:
        return [f"{r.url.host}{r.url.path}" for r in self.requests]


@pytest.fixture
def make_id_token(signing_key):
    """Sign claims; pass key=... to sign with a different key."""

    def _make(key: Any = None, **overrides: Any) -> str:
        return sign_id_token(key or signing_key, **overrides)

    return _make


@pytest.fixture
def idp(signing_key) -> FakeIdP:
    return FakeIdP(signing_key)


@pytest.fixture
def transport(idp: FakeIdP) -> httpx.MockTransport:
    return httpx.MockTransport(idp.handler)


@pytest.fixture
async def github(state_service, bridge, transport) -> GitHubProvider:
    provider = GitHubProvider(state=state_service, bridge=bridge, transport=transport)
    await provider.init(REDIRECT_URL, CLIENT_ID, CLIENT_SECRET)
    return provider


@pytest.fixture
async def google(state_service, bridge, transport) -> GoogleProvider:
    provider = GoogleProvider(state=state_service, bridge=bridge, transport=transport)
    await provider.init(REDIRECT_URL, CLIENT_ID, CLIENT_SECRET)
    return provider


@pytest.fixture
async def oidc(state_service, bridge, transport) -> OIDCProvider:
    provider = OIDCProvider(state=state_service, bridge=bridge, transport=transport)
    await provider.init(REDIRECT_URL, CLIENT_ID, CLIENT_SECRET, ISSUER)
    return provider
