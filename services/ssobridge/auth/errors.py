"""SSO failure kinds.

Every failure in the login/callback flow is raised as an SSOError subclass
at the point of detection and rendered into a terminal HTTP response by the
exception handler in ssobridge.api.app. The message is user-facing; the
underlying cause belongs in the log, not the response.
"""

from fastapi import status


class SSOError(Exception):
    """Base class for all login/callback failures."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "sso login failed"

    def __init__(self, reason: str | None = None) -> None:
        # reason is for the log; message is what the client sees
        super().__init__(reason or self.message)
        self.reason = reason or self.message


class NotConfigured(SSOError):
    """Provider never initialized, discovery failed or state store unavailable."""

    message = "oauth provider not configured"


class InvalidState(SSOError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "invalid oauth state"


class ExchangeFailed(SSOError):
    status_code = status.HTTP_502_BAD_GATEWAY
    message = "code exchange failed"


class UserInfoFailed(SSOError):
    status_code = status.HTTP_502_BAD_GATEWAY
    message = "failed getting user info"


class IdentityVerificationFailed(SSOError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "identity verification failed"


class UserLookupFailed(SSOError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "user not found"


class UserCreationFailed(UserLookupFailed):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "failed to create user"


class UserNotAllowed(SSOError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "only administrators may log in with SSO"


class SessionIssuanceFailed(SSOError):
    message = "failed to issue session"
