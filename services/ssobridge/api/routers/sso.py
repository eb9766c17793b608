"""SSO router.

Every provider goes through the same two endpoints; the provider name in
the path selects the adapter from the registry:

    GET /login/{provider}      307 to the provider's authorization URL
    GET /callback/{provider}   307 to the front end with provider, token, username
    GET /providers             names of initialized providers
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from ssobridge.auth.providers import ProviderRegistry
from ssobridge.logging_config import get_logger

router = APIRouter(tags=["sso"])
logger = get_logger(__name__)


class ProvidersResponse(BaseModel):
    providers: list[str]


def get_registry(request: Request) -> ProviderRegistry:
    """Registry built in the lifespan handler."""
    return request.app.state.registry


@router.get("/providers", response_model=ProvidersResponse)
async def list_providers(registry: ProviderRegistry = Depends(get_registry)) -> ProvidersResponse:
    return ProvidersResponse(providers=registry.configured())


@router.get("/login/{provider}")
async def login(
    provider: str,
    request: Request,
    registry: ProviderRegistry = Depends(get_registry),
) -> RedirectResponse:
    return await registry.get_provider(provider).handle_login(request)


@router.get("/callback/{provider}")
async def callback(
    provider: str,
    request: Request,
    registry: ProviderRegistry = Depends(get_registry),
) -> RedirectResponse:
    logger.info("SSO callback received", provider=provider)
    return await registry.get_provider(provider).handle_callback(request)
