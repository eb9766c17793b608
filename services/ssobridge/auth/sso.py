"""SSO provider base abstraction.

Defines the five operations every identity provider adapter exposes
(init, handle_login, handle_callback, get_user_info, verify_user) and
implements the parts that are identical across providers: the login
redirect, the callback state machine, the code-for-token exchange and the
local token validity check. Subclasses supply endpoint resolution and
identity retrieval.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar
from urllib.parse import urlencode

import httpx
from authlib.oauth2.rfc6749 import OAuth2Token
from fastapi import Request, status
from fastapi.responses import RedirectResponse

from ssobridge.auth.errors import ExchangeFailed, InvalidState, NotConfigured, UserInfoFailed
from ssobridge.auth.identity import OAuthUser
from ssobridge.auth.state import StateTokenService
from ssobridge.logging_config import get_logger
from ssobridge.services.session_bridge import SessionBridge

logger = get_logger(__name__)

HTTP_TIMEOUT = 30.0


@dataclass(frozen=True)
class ProviderConfig:
    """Resolved provider configuration. Replaced as a whole on re-init."""

    redirect_url: str
    client_id: str
    client_secret: str = ""
    issuer_url: str | None = None
    authorize_url: str = ""
    token_url: str = ""
    userinfo_url: str = ""
    scopes: tuple[str, ...] = ()


class SSOProvider(ABC):
    """Abstract base class for all identity provider adapters."""

    name: ClassVar[str]  # registry key, e.g. "github"
    label: ClassVar[str]  # shown to the front end, e.g. "GitHub"

    def __init__(
        self,
        state: StateTokenService,
        bridge: SessionBridge,
        http_timeout: float = HTTP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._state = state
        self._bridge = bridge
        self._http_timeout = http_timeout
        self._transport = transport
        self._config: ProviderConfig | None = None

    @property
    def configured(self) -> bool:
        return self._config is not None

    @property
    def exchange_timeout(self) -> float:
        return self._http_timeout

    def _require_config(self) -> ProviderConfig:
        config = self._config
        if config is None:
            raise NotConfigured(f"{self.name} provider is not initialized")
        return config

    def _client(self, timeout: float | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout if timeout is not None else self._http_timeout,
            transport=self._transport,
        )

    @abstractmethod
    async def init(
        self,
        redirect_url: str,
        client_id: str,
        client_secret: str,
        issuer_url: str | None = None,
    ) -> None:
        """Resolve endpoints and store an immutable configuration."""

    @abstractmethod
    async def fetch_identity(self, config: ProviderConfig, token: OAuth2Token) -> OAuthUser:
        """Turn an exchanged token into a normalized identity."""

    def authorization_url(self, config: ProviderConfig, state: str) -> str:
        params = {
            "response_type": "code",
            "client_id": config.client_id,
            "redirect_uri": config.redirect_url,
        }
        if config.scopes:
            params["scope"] = " ".join(config.scopes)
        params["state"] = state
        return f"{config.authorize_url}?{urlencode(params)}"

    async def handle_login(self, request: Request) -> RedirectResponse:
        """Issue a state token and send the browser to the provider."""
        config = self._require_config()
        state = await self._state.issue()
        url = self.authorization_url(config, state)
        logger.info("Login: redirecting to provider", provider=self.name)
        return RedirectResponse(url=url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)

    async def handle_callback(self, request: Request) -> RedirectResponse:
        state = request.query_params.get("state", "")
        code = request.query_params.get("code", "")

        identity = await self.get_user_info(state, code)
        redirect_url = await self._bridge.complete_login(self.label, identity)
        return RedirectResponse(url=redirect_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)

    async def get_user_info(self, state: str, code: str) -> OAuthUser:
        config = self._require_config()
        if not await self._state.validate(state):
            raise InvalidState()

        token = await self.exchange_code(config, code)
        identity = await self.fetch_identity(config, token)
        identity.access_token = json.dumps(dict(token))
        return identity

    async def exchange_code(self, config: ProviderConfig, code: str) -> OAuth2Token:
        """Trade the authorization code for a token, server to server."""
        if not code:
            raise ExchangeFailed("callback carried no code")

        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": config.redirect_url,
            "client_id": config.client_id,
            "client_secret": config.client_secret,
        }
        try:
            async with self._client(self.exchange_timeout) as client:
                resp = await client.post(
                    config.token_url,
                    data=data,
                    headers={"Accept": "application/json"},
                )
                resp.raise_for_status()
                payload = resp.json()
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            raise ExchangeFailed(f"{self.name} code exchange failed: {e}") from e

        # GitHub reports a bad code with a 200 and an error field
        if not isinstance(payload, dict) or "error" in payload:
            error = payload.get("error") if isinstance(payload, dict) else payload
            raise ExchangeFailed(f"{self.name} code exchange rejected: {error}")
        if not payload.get("access_token"):
            raise ExchangeFailed(f"{self.name} code exchange returned no access_token")

        return OAuth2Token.from_dict(payload)

    async def _get_json(self, url: str, headers: dict[str, str]) -> Any:
        try:
            async with self._client() as client:
                resp = await client.get(url, headers=headers)
                resp.raise_for_status()
                return resp.json()
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            raise UserInfoFailed(f"failed getting user info from {self.name}: {e}") from e

    def verify_user(self, token: dict[str, Any]) -> bool:
        """True if the token has an access token and has not expired.

        Local check only; revocation at the provider is not detected.
        """
        if not isinstance(token, OAuth2Token):
            token = OAuth2Token.from_dict(dict(token))
        if not token.get("access_token"):
            return False
        return not token.is_expired(leeway=0)
