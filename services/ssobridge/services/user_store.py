"""Host user store.

The bridge only needs two operations from the host's user database:
lookup by username and creation of an SSO-originated account.
SqlUserStore implements them over the host's users table.
"""

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select

from ssobridge.db.models import User
from ssobridge.db.session import get_db_session
from ssobridge.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class HostUser:
    """The host account as seen by the bridge."""

    username: str
    is_admin: bool = False
    is_super_admin: bool = False


class UserStore(Protocol):
    async def get_user(self, username: str) -> HostUser | None:
        """Return the user, or None if absent. Raises on store errors."""
        ...

    async def create_user(self, username: str, is_sso: bool) -> None: ...


class SqlUserStore:
    """UserStore over the host's users table."""

    async def get_user(self, username: str) -> HostUser | None:
        async with get_db_session() as db:
            result = await db.execute(select(User).where(User.username == username))
            user = result.scalar_one_or_none()
        if user is None:
            return None
        return HostUser(
            username=user.username,
            is_admin=user.is_admin,
            is_super_admin=user.is_super_admin,
        )

    async def create_user(self, username: str, is_sso: bool) -> None:
        # New accounts are never admins; elevation is a host-side decision
        async with get_db_session() as db:
            db.add(User(username=username, is_sso=is_sso, is_admin=False, is_super_admin=False))
        logger.info("Created user", username=username, is_sso=is_sso)
