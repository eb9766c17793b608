"""SSO provider registry.

Maps provider name to its adapter. Built once at startup and read-only
thereafter; the HTTP layer dispatches through it without knowing which
provider it is talking to.
"""

import os
from collections.abc import Iterator, Mapping
from types import MappingProxyType

import httpx

from ssobridge.auth.errors import NotConfigured
from ssobridge.auth.providers.github import GitHubProvider
from ssobridge.auth.providers.google import GoogleProvider
from ssobridge.auth.providers.oidc import OIDCProvider
from ssobridge.auth.sso import SSOProvider
from ssobridge.auth.state import StateTokenService
from ssobridge.config import SSOConfig
from ssobridge.logging_config import get_logger
from ssobridge.services.session_bridge import SessionBridge

logger = get_logger(__name__)

# Environment variable overrides for client secrets.
# Keyed by provider name (uppercase), e.g. SSOBRIDGE_GITHUB_CLIENT_SECRET.
_SECRET_ENV_PREFIX = "SSOBRIDGE_"
_SECRET_ENV_SUFFIX = "_CLIENT_SECRET"


class ProviderRegistry(Mapping[str, SSOProvider]):
    """Read-only provider name -> adapter mapping."""

    def __init__(self, providers: Mapping[str, SSOProvider]) -> None:
        self._providers = MappingProxyType(dict(providers))

    def __getitem__(self, name: str) -> SSOProvider:
        return self._providers[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._providers)

    def __len__(self) -> int:
        return len(self._providers)

    def get_provider(self, name: str) -> SSOProvider:
        """Look up a provider. Unknown names are reported as NotConfigured."""
        provider = self._providers.get(name.lower())
        if provider is None:
            raise NotConfigured(f"unknown provider: {name}")
        return provider

    def configured(self) -> list[str]:
        """Names of providers that completed init."""
        return [name for name, p in self._providers.items() if p.configured]


def build_registry(
    state: StateTokenService,
    bridge: SessionBridge,
    config: SSOConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderRegistry:
    """Construct one adapter per supported provider. Nothing is initialized yet."""
    common = {
        "state": state,
        "bridge": bridge,
        "http_timeout": config.http_timeout_seconds,
        "transport": transport,
    }
    providers: list[SSOProvider] = [
        GitHubProvider(**common),
        GoogleProvider(**common),
        OIDCProvider(**common, oidc_timeout=config.oidc_timeout_seconds),
    ]
    return ProviderRegistry({p.name: p for p in providers})


def _client_secret(name: str, configured_secret: str) -> str:
    """Config value wins; otherwise SSOBRIDGE_{NAME}_CLIENT_SECRET."""
    if configured_secret:
        return configured_secret
    env_key = f"{_SECRET_ENV_PREFIX}{name.upper()}{_SECRET_ENV_SUFFIX}"
    env_secret = os.environ.get(env_key, "")
    if env_secret:
        logger.debug("Loaded client_secret from env", provider=name, env_var=env_key)
    return env_secret


async def init_providers(registry: ProviderRegistry, config: SSOConfig) -> None:
    """Initialize every provider that has credentials configured.

    Called during application startup (lifespan handler). A provider whose
    init fails stays registered but unconfigured.
    """
    for name, provider in registry.items():
        provider_settings = getattr(config, name)
        if not provider_settings.configured:
            logger.info("Provider not configured, skipping", provider=name)
            continue

        await provider.init(
            provider_settings.redirect_url,
            provider_settings.client_id,
            _client_secret(name, provider_settings.client_secret),
            provider_settings.issuer_url or None,
        )
        if provider.configured:
            logger.info("Registered SSO provider", provider=name)

    logger.info("SSO providers initialized", configured=registry.configured())
