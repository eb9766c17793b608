"""Google OAuth2 adapter. Identity is keyed by ``email``."""

from authlib.oauth2.rfc6749 import OAuth2Token

from ssobridge.auth.errors import UserInfoFailed
from ssobridge.auth.identity import IdentityParseError, OAuthUser, normalize_google
from ssobridge.auth.sso import ProviderConfig, SSOProvider
from ssobridge.logging_config import get_logger

logger = get_logger(__name__)

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_SCOPES = ("https://www.googleapis.com/auth/userinfo.email",)


class GoogleProvider(SSOProvider):
    name = "google"
    label = "Google"

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
            authorize_url=GOOGLE_AUTHORIZE_URL,
            token_url=GOOGLE_TOKEN_URL,
            userinfo_url=GOOGLE_USERINFO_URL,
            scopes=GOOGLE_SCOPES,
        )
        logger.info("Google provider initialized", redirect_url=redirect_url)

    async def fetch_identity(self, config: ProviderConfig, token: OAuth2Token) -> OAuthUser:
        payload = await self._get_json(
            config.userinfo_url,
            headers={"Authorization": f"Bearer {token['access_token']}"},
        )
        try:
            return normalize_google(payload)
        except IdentityParseError as e:
            raise UserInfoFailed(f"failed parsing email from Google response: {e}") from e
