"""Anti-CSRF state tokens for the SSO login transaction.

A state token is issued in /login/{provider}, embedded in the provider's
authorization URL and consumed in /callback/{provider}. It lives in two tiers:

- the durable store (Redis, TTL 5 minutes). Consuming a token replaces it
  with a CONSUMED_STATE marker that outlives every local cache entry.
- a process-local cache with a short grace TTL, consulted only when the
  durable store does not know the token (eviction, restart, outage)

Validation consumes the token from both tiers. A consumed marker in the
durable store rejects the token in every process, whatever that process's
local cache holds, so a token validates at most once. A token absent from
both tiers is rejected.
"""

import secrets
import threading
import time
from collections.abc import Callable
from typing import Protocol

from ssobridge.auth.errors import NotConfigured
from ssobridge.logging_config import get_logger
from ssobridge.redis.client import get_redis_client

logger = get_logger(__name__)

STATE_PREFIX = "ssob:state:"
STATE_TTL = 300  # 5 minutes
STATE_CACHE_TTL = 120  # 2 minutes
STATE_LENGTH = 32

# Stored in place of a token once it has been consumed. Never a valid token:
# generated tokens are URL-safe base64 without a colon.
CONSUMED_STATE = "consumed:"


class StateStore(Protocol):
    """Durable state store collaborator."""

    async def set_state(self, token: str) -> None: ...

    async def is_state_valid(self, token: str) -> tuple[str, bool]:
        """Consume the token and return (stored value, found).

        Found is False when unknown or expired. A token that was already
        consumed returns (CONSUMED_STATE, True).
        """
        ...


def generate_state(length: int = STATE_LENGTH) -> str:
    """Generate a cryptographically random state parameter."""
    return secrets.token_urlsafe(length)


class RedisStateStore:
    """StateStore backed by Redis keys with a TTL."""

    def __init__(self, ttl: int = STATE_TTL, consumed_ttl: int = STATE_CACHE_TTL) -> None:
        self._ttl = ttl
        self._consumed_ttl = consumed_ttl

    async def set_state(self, token: str) -> None:
        redis = get_redis_client()
        await redis.set(STATE_PREFIX + token, token, ex=self._ttl)

    async def is_state_valid(self, token: str) -> tuple[str, bool]:
        redis = get_redis_client()
        key = STATE_PREFIX + token

        # Atomic get-and-mark via pipeline; xx leaves unknown tokens unwritten
        async with redis.pipeline(transaction=True) as pipe:
            pipe.get(key)
            pipe.set(key, CONSUMED_STATE, ex=self._consumed_ttl, xx=True)
            results = await pipe.execute()

        data = results[0]
        if data is None:
            return "", False
        return data, True


class StateCache:
    """Process-local fallback tier. Safe for concurrent use."""

    def __init__(self, ttl: float = STATE_CACHE_TTL, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, float] = {}  # token -> expires_at
        self._lock = threading.Lock()

    def _evict_expired(self, now: float) -> None:
        expired = [k for k, exp in self._entries.items() if exp <= now]
        for k in expired:
            del self._entries[k]

    def add(self, token: str) -> None:
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            self._entries[token] = now + self._ttl

    def consume(self, token: str) -> bool:
        """Remove the token. True if it was present and unexpired."""
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            return self._entries.pop(token, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class StateTokenService:
    """Issues and validates single-use state tokens across both tiers."""

    def __init__(
        self,
        store: StateStore,
        cache: StateCache | None = None,
        length: int = STATE_LENGTH,
    ) -> None:
        self._store = store
        self._cache = cache if cache is not None else StateCache()
        self._length = length

    async def issue(self) -> str:
        """Generate a token and register it as pending.

        Raises NotConfigured if the durable store cannot record it; a login
        never proceeds without a registered state.
        """
        token = generate_state(self._length)
        try:
            await self._store.set_state(token)
        except Exception as e:
            logger.error("Failed to store oauth state", error=str(e))
            raise NotConfigured(f"state store unavailable: {e}") from e
        self._cache.add(token)
        logger.debug("Issued oauth state", state=token)
        return token

    async def validate(self, presented: str) -> bool:
        if not presented:
            return False

        try:
            stored, found = await self._store.is_state_valid(presented)
        except Exception as e:
            logger.warning("State store lookup failed, using local cache", error=str(e))
            stored, found = "", False

        # Always consume the cached copy so the token cannot validate twice
        cached = self._cache.consume(presented)

        logger.debug("Validating oauth state", state=presented, stored=stored)
        if found and stored == presented:
            return True
        if found and stored == CONSUMED_STATE:
            logger.warning("Oauth state already consumed")
            return False
        if cached:
            logger.info("Oauth state recovered from local cache")
            return True

        logger.warning("Oauth state not found in any tier")
        return False
