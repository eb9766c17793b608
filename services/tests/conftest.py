"""
Top-level test configuration for the SSO bridge.

Provides in-memory fakes for the three collaborators (state store, user
store, credential issuer) with call recording for count assertions.
"""

import os

import pytest

# Ensure test-friendly defaults
os.environ.setdefault("SSOBRIDGE_JSON_LOGS", "false")
os.environ.setdefault("SSOBRIDGE_LOG_LEVEL", "DEBUG")

from ssobridge.auth.state import CONSUMED_STATE, StateCache, StateTokenService  # noqa: E402
from ssobridge.services.session_bridge import SessionBridge  # noqa: E402
from ssobridge.services.user_store import HostUser  # noqa: E402

FRONTEND_URL = "https://host.example.com/login"


class FakeStateStore:
    def __init__(self) -> None:
        self.states: dict[str, str] = {}
        self.fail_writes = False

    async def set_state(self, token: str) -> None:
        if self.fail_writes:
            raise ConnectionError("state store unreachable")
        self.states[token] = token

    async def is_state_valid(self, token: str) -> tuple[str, bool]:
        stored = self.states.get(token)
        if stored is None:
            return "", False
        self.states[token] = CONSUMED_STATE
        return stored, True


class FakeUserStore:
    def __init__(self) -> None:
        self.users: dict[str, HostUser] = {}
        self.calls: list[tuple[str, str]] = []
        self.create_error: Exception | None = None
        # Role given to users created through create_user
        self.created_role = HostUser(username="")

    async def get_user(self, username: str) -> HostUser | None:
        self.calls.append(("get_user", username))
        return self.users.get(username)

    async def create_user(self, username: str, is_sso: bool) -> None:
        self.calls.append(("create_user", username))
        if self.create_error is not None:
            raise self.create_error
        self.users[username] = HostUser(
            username=username,
            is_admin=self.created_role.is_admin,
            is_super_admin=self.created_role.is_super_admin,
        )

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)


class FakeIssuer:
    def __init__(self) -> None:
        self.fetch_calls: list[str] = []
        self.issue_calls: list[tuple[str, str]] = []
        self.error: Exception | None = None

    async def fetch_pass_value(self, username: str) -> str:
        self.fetch_calls.append(username)
        return f"otp-for-{username}"

    async def issue_session(self, username: str, one_time_password: str) -> str:
        self.issue_calls.append((username, one_time_password))
        if self.error is not None:
            raise self.error
        return f"session-{username}"


@pytest.fixture
def state_store() -> FakeStateStore:
    return FakeStateStore()


@pytest.fixture
def state_service(state_store: FakeStateStore) -> StateTokenService:
    return StateTokenService(state_store, StateCache(ttl=120))


@pytest.fixture
def user_store() -> FakeUserStore:
    return FakeUserStore()


@pytest.fixture
def issuer() -> FakeIssuer:
    return FakeIssuer()


@pytest.fixture
def bridge(user_store: FakeUserStore, issuer: FakeIssuer) -> SessionBridge:
    return SessionBridge(users=user_store, issuer=issuer, frontend_url=FRONTEND_URL)
