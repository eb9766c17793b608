"""GitHub OAuth2 adapter.

GitHub is plain OAuth2 (no OIDC), so endpoints are fixed and the identity
comes from the REST user endpoint, keyed by ``login``.
"""

from authlib.oauth2.rfc6749 import OAuth2Token

from ssobridge.auth.errors import ExchangeFailed, UserInfoFailed
from ssobridge.auth.identity import IdentityParseError, OAuthUser, normalize_github
from ssobridge.auth.sso import ProviderConfig, SSOProvider
from ssobridge.logging_config import get_logger

logger = get_logger(__name__)

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_USER_URL = "https://api.github.com/user"


class GitHubProvider(SSOProvider):
    name = "github"
    label = "GitHub"

    async def init(
        self,
        redirect_url: str,
        client_id: str,
        client_secret: str,
        issuer_url: str | None = None,
    ) -> None:
        self._config = ProviderConfig(
            redirect_url=redirect_url,
            client_id=client_id,
            client_secret=client_secret,
            authorize_url=GITHUB_AUTHORIZE_URL,
            token_url=GITHUB_TOKEN_URL,
            userinfo_url=GITHUB_USER_URL,
        )
        logger.info("GitHub provider initialized", redirect_url=redirect_url)

    async def fetch_identity(self, config: ProviderConfig, token: OAuth2Token) -> OAuthUser:
        if not self.verify_user(token):
            raise ExchangeFailed("GitHub code exchange yielded invalid token")

        payload = await self._get_json(
            config.userinfo_url,
            headers={
                "Authorization": f"token {token['access_token']}",
                "Accept": "application/vnd.github+json",
            },
        )
        try:
            return normalize_github(payload)
        except IdentityParseError as e:
            raise UserInfoFailed(f"failed parsing login from GitHub response: {e}") from e
