"""Session bridge: normalized identity in, host session redirect out.

Handles the last leg of every SSO callback, whatever the provider:
1. Look up the host user by the identity's primary identifier
2. On a miss, create an SSO-originated account and look it up again
3. Refuse anyone who is not admin or super admin
4. Mint a host session with a one-time password
5. Build the redirect that hands provider, token and username to the front end

User creation and session issuance are the last two steps, so any failure
before them leaves no visible side effects.
"""

from typing import Protocol
from urllib.parse import urlencode

from ssobridge.auth.errors import (
    SessionIssuanceFailed,
    UserCreationFailed,
    UserLookupFailed,
    UserNotAllowed,
)
from ssobridge.auth.identity import OAuthUser
from ssobridge.logging_config import get_logger
from ssobridge.services.user_store import HostUser, UserStore

logger = get_logger(__name__)


class CredentialIssuer(Protocol):
    """Host credential issuer collaborator."""

    async def fetch_pass_value(self, username: str) -> str:
        """Return a one-time password the issuer will accept for username."""
        ...

    async def issue_session(self, username: str, one_time_password: str) -> str:
        """Return a signed/opaque host session token."""
        ...


def build_sso_redirect(frontend_url: str, provider: str, token: str, username: str) -> str:
    """Append provider, token and username to the front end URL."""
    separator = "&" if "?" in frontend_url else "?"
    query = urlencode({"provider": provider, "token": token, "username": username})
    return f"{frontend_url}{separator}{query}"


class SessionBridge:
    def __init__(self, users: UserStore, issuer: CredentialIssuer, frontend_url: str) -> None:
        self._users = users
        self._issuer = issuer
        self._frontend_url = frontend_url

    async def _lookup(self, username: str) -> HostUser | None:
        try:
            return await self._users.get_user(username)
        except Exception as e:
            logger.error("User lookup failed", username=username, error=str(e))
            raise UserLookupFailed(f"lookup of {username} failed: {e}") from e

    async def provision(self, identity: OAuthUser) -> HostUser:
        """Return the host user for identity, creating it on first login."""
        username = identity.primary_identifier

        user = await self._lookup(username)
        if user is None:
            logger.info("Creating SSO user", username=username)
            try:
                await self._users.create_user(username, is_sso=True)
            except Exception as e:
                logger.error("Failed to create SSO user", username=username, error=str(e))
                raise UserCreationFailed(f"create of {username} failed: {e}") from e
            user = await self._lookup(username)

        if user is None:
            raise UserLookupFailed(f"{username} missing after creation")
        return user

    async def complete_login(self, provider_label: str, identity: OAuthUser) -> str:
        """Provision, authorize and mint a session. Returns the final redirect URL."""
        user = await self.provision(identity)

        if not (user.is_admin or user.is_super_admin):
            logger.warning("SSO login refused for non-admin", username=user.username)
            raise UserNotAllowed(f"{user.username} is not an administrator")

        try:
            one_time_password = await self._issuer.fetch_pass_value(user.username)
            token = await self._issuer.issue_session(user.username, one_time_password)
        except Exception as e:
            logger.error("Could not issue session", username=user.username, error=str(e))
            raise SessionIssuanceFailed(f"session for {user.username}: {e}") from e

        logger.info("SSO login complete", provider=provider_label, username=user.username)
        return build_sso_redirect(self._frontend_url, provider_label, token, user.username)
