"""Redis-backed host session issuer.

Implements the CredentialIssuer the session bridge talks to. A login goes
through two steps:

- fetch_pass_value: mint a one-time password for the user, keep only its
  hash under a short TTL
- issue_session: consume (GET+DELETE) that hash, verify the presented
  password, then store a new opaque session token

Session tokens are opaque (not JWTs); the host validates them by looking
them up in Redis.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import timedelta

from ssobridge.auth.passwords import generate_one_time_password, hash_password, verify_password
from ssobridge.db.models import utc_now
from ssobridge.logging_config import get_logger
from ssobridge.redis.client import get_redis_client

logger = get_logger(__name__)

SESSION_PREFIX = "ssob:session:"
ONE_TIME_PASSWORD_PREFIX = "ssob:otp:"
ONE_TIME_PASSWORD_TTL = 60
SESSION_TTL_HOURS = 12


class InvalidOneTimePassword(ValueError):
    """Presented one-time password is unknown, expired or wrong."""


@dataclass
class Session:
    """Host session state stored in Redis."""

    username: str
    created_at: str  # ISO 8601
    expires_at: str  # ISO 8601
    sso: bool = True

    # Token is not stored in Redis, it's the key
    token: str = field(default="", repr=False)


def generate_session_token() -> str:
    """Generate a cryptographically random session token."""
    return generate_one_time_password()


class RedisSessionIssuer:
    def __init__(
        self,
        session_ttl_hours: int = SESSION_TTL_HOURS,
        one_time_password_ttl: int = ONE_TIME_PASSWORD_TTL,
    ) -> None:
        self._session_ttl = session_ttl_hours * 3600
        self._otp_ttl = one_time_password_ttl

    async def fetch_pass_value(self, username: str) -> str:
        redis = get_redis_client()
        password = generate_one_time_password()
        await redis.set(
            ONE_TIME_PASSWORD_PREFIX + username,
            hash_password(password),
            ex=self._otp_ttl,
        )
        return password

    async def _consume_password_hash(self, username: str) -> str | None:
        redis = get_redis_client()
        key = ONE_TIME_PASSWORD_PREFIX + username
        async with redis.pipeline(transaction=True) as pipe:
            pipe.get(key)
            pipe.delete(key)
            results = await pipe.execute()
        return results[0]

    async def issue_session(self, username: str, one_time_password: str) -> str:
        password_hash = await self._consume_password_hash(username)
        if password_hash is None or not verify_password(one_time_password, password_hash):
            raise InvalidOneTimePassword(f"one-time password rejected for {username}")

        redis = get_redis_client()
        token = generate_session_token()
        now = utc_now()
        session = Session(
            username=username,
            created_at=now.isoformat(),
            expires_at=(now + timedelta(seconds=self._session_ttl)).isoformat(),
        )
        data = asdict(session)
        data.pop("token")
        await redis.set(SESSION_PREFIX + token, json.dumps(data), ex=self._session_ttl)

        logger.info("Session created", username=username)
        return token


async def get_session(token: str) -> Session | None:
    """Look up a session by token. Returns None if not found or expired."""
    redis = get_redis_client()
    data = await redis.get(SESSION_PREFIX + token)
    if data is None:
        return None
    return Session(token=token, **json.loads(data))
