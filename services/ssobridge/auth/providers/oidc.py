"""OpenID Connect adapter.

Uses authlib for JWKS-based ID token validation. init() performs discovery
against the issuer with a bounded timeout; if discovery fails the adapter
stays unconfigured and every operation reports NotConfigured. Identity is
taken from the verified ID token's ``email`` claim, never from an
unverified payload.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
from authlib.jose import JsonWebKey, JWTClaims
from authlib.jose import jwt as authlib_jwt
from authlib.jose.errors import JoseError
from authlib.oauth2.rfc6749 import OAuth2Token

from ssobridge.auth.errors import IdentityVerificationFailed
from ssobridge.auth.identity import OAuthUser, normalize_oidc
from ssobridge.auth.sso import ProviderConfig, SSOProvider
from ssobridge.logging_config import get_logger

logger = get_logger(__name__)

OIDC_TIMEOUT = 10.0
OIDC_SCOPES = ("openid", "profile", "email")
DISCOVERY_PATH = "/.well-known/openid-configuration"


class IDTokenVerifier:
    """Verifies ID token signature, issuer, audience and expiry.

    Scoped to one client_id. The key set is fetched on first use and cached.
    """

    def __init__(
        self,
        issuer: str,
        client_id: str,
        jwks_uri: str,
        client_factory: Callable[[], httpx.AsyncClient],
    ) -> None:
        self.issuer = issuer
        self.client_id = client_id
        self.jwks_uri = jwks_uri
        self._client_factory = client_factory
        self._jwks: Any | None = None

    async def _ensure_jwks(self) -> Any:
        if self._jwks is not None:
            return self._jwks

        async with self._client_factory() as client:
            resp = await client.get(self.jwks_uri)
            resp.raise_for_status()
            self._jwks = JsonWebKey.import_key_set(resp.json())
        return self._jwks

    async def verify(self, raw_id_token: str) -> JWTClaims:
        jwks = await self._ensure_jwks()
        claims = authlib_jwt.decode(
            raw_id_token,
            jwks,
            claims_options={
                "iss": {"essential": True, "value": self.issuer},
                "aud": {"essential": True, "value": self.client_id},
            },
        )
        claims.validate()
        return claims


@dataclass(frozen=True)
class OIDCProviderConfig(ProviderConfig):
    """Discovery results and the verifier built from them, swapped as one unit."""

    issuer: str = ""
    jwks_uri: str = ""
    verifier: IDTokenVerifier | None = field(default=None, compare=False, repr=False)


class OIDCProvider(SSOProvider):
    name = "oidc"
    label = "OIDC"

    def __init__(self, *args: Any, oidc_timeout: float = OIDC_TIMEOUT, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.oidc_timeout = oidc_timeout

    @property
    def exchange_timeout(self) -> float:
        return self.oidc_timeout

    async def _discover(self, issuer_url: str) -> dict[str, Any]:
        discovery_url = issuer_url.rstrip("/") + DISCOVERY_PATH
        async with self._client(self.oidc_timeout) as client:
            resp = await client.get(discovery_url)
            resp.raise_for_status()
            metadata = resp.json()

        if not isinstance(metadata, dict):
            raise ValueError("discovery document is not a JSON object")
        for key in ("issuer", "authorization_endpoint", "token_endpoint", "jwks_uri"):
            if not isinstance(metadata.get(key), str) or not metadata[key]:
                raise ValueError(f"discovery document missing {key}")
        if metadata["issuer"].rstrip("/") != issuer_url.rstrip("/"):
            raise ValueError(
                f"issuer did not match: expected {issuer_url}, got {metadata['issuer']}"
            )
        return metadata

    async def init(
        self,
        redirect_url: str,
        client_id: str,
        client_secret: str,
        issuer_url: str | None = None,
    ) -> None:
        if not issuer_url:
            logger.error("OIDC provider requires an issuer URL")
            self._config = None
            return

        try:
            metadata = await self._discover(issuer_url)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            logger.error(
                "Error when initializing OIDC provider", issuer=issuer_url, error=str(e)
            )
            self._config = None
            return

        verifier = IDTokenVerifier(
            issuer=metadata["issuer"],
            client_id=client_id,
            jwks_uri=metadata["jwks_uri"],
            client_factory=lambda: self._client(self.oidc_timeout),
        )
        self._config = OIDCProviderConfig(
            redirect_url=redirect_url,
            client_id=client_id,
            client_secret=client_secret,
            issuer_url=issuer_url,
            authorize_url=metadata["authorization_endpoint"],
            token_url=metadata["token_endpoint"],
            userinfo_url=metadata.get("userinfo_endpoint", ""),
            scopes=OIDC_SCOPES,
            issuer=metadata["issuer"],
            jwks_uri=metadata["jwks_uri"],
            verifier=verifier,
        )
        logger.info("OIDC discovery loaded", issuer=metadata["issuer"])

    async def fetch_identity(self, config: ProviderConfig, token: OAuth2Token) -> OAuthUser:
        raw_id_token = token.get("id_token")
        if not isinstance(raw_id_token, str) or not raw_id_token:
            raise IdentityVerificationFailed("failed to get raw id_token from oauth2 token")

        verifier = config.verifier if isinstance(config, OIDCProviderConfig) else None
        if verifier is None:
            raise IdentityVerificationFailed("no ID token verifier configured")

        try:
            claims = await verifier.verify(raw_id_token)
            return normalize_oidc(claims)
        except JoseError as e:
            raise IdentityVerificationFailed(f"failed to verify raw id_token: {e}") from e
        except Exception as e:
            # Any fault while fetching keys or decoding claims fails verification
            logger.error("OIDC claim decoding fault", error=str(e), exc_info=True)
            raise IdentityVerificationFailed(f"error when claiming OIDC user: {e}") from e
