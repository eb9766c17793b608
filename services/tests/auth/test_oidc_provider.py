"""Tests for the OIDC adapter: discovery, ID token verification, fault handling."""

from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from ssobridge.auth.errors import ExchangeFailed, IdentityVerificationFailed, NotConfigured
from ssobridge.auth.providers.oidc import OIDCProvider

ISSUER = "https://idp.example.com"


def _request(**query: str) -> MagicMock:
    request = MagicMock()
    request.query_params = query
    return request


class TestDiscovery:
    async def test_init_resolves_endpoints(self, oidc):
        assert oidc.configured
        response = await oidc.handle_login(_request())

        location = response.headers["location"]
        assert location.startswith(f"{ISSUER}/authorize?")
        assert "scope=openid+profile+email" in location

    async def test_unreachable_issuer_leaves_provider_unconfigured(
        self, state_service, bridge, idp, transport, state_store
    ):
        idp.discovery_error = httpx.ConnectError("connection refused")
        provider = OIDCProvider(state=state_service, bridge=bridge, transport=transport)

        await provider.init("https://bridge/cb", "client", "secret", ISSUER)

        assert not provider.configured
        with pytest.raises(NotConfigured):
            await provider.handle_login(_request())
        assert state_store.states == {}

    async def test_discovery_timeout_is_not_configured(
        self, state_service, bridge, idp, transport
    ):
        idp.discovery_error = httpx.ReadTimeout("timed out")
        provider = OIDCProvider(state=state_service, bridge=bridge, transport=transport)

        await provider.init("https://bridge/cb", "client", "secret", ISSUER)

        with pytest.raises(NotConfigured):
            await provider.get_user_info("S1", "C1")

    async def test_failed_reinit_drops_previous_config(self, oidc, idp):
        idp.discovery_error = httpx.ConnectError("gone")

        await oidc.init("https://bridge/cb", "client", "secret", ISSUER)

        assert not oidc.configured

    async def test_issuer_mismatch_rejected(self, state_service, bridge, transport):
        provider = OIDCProvider(state=state_service, bridge=bridge, transport=transport)

        # Discovery is served for idp.example.com but claims a different issuer URL
        await provider.init("https://bridge/cb", "client", "secret", ISSUER + "/tenant")

        assert not provider.configured

    async def test_missing_issuer_url(self, state_service, bridge, transport):
        provider = OIDCProvider(state=state_service, bridge=bridge, transport=transport)
        await provider.init("https://bridge/cb", "client", "secret")
        assert not provider.configured

    async def test_malformed_issuer_url_leaves_provider_unconfigured(
        self, state_service, bridge, transport
    ):
        provider = OIDCProvider(state=state_service, bridge=bridge, transport=transport)

        # Non-numeric port: httpx rejects the URL before any request is sent
        await provider.init(
            "https://bridge/cb", "client", "secret", "https://idp.example.com:notaport"
        )

        assert not provider.configured

    async def test_reinit_swaps_config_and_verifier_together(self, oidc):
        before = oidc._config

        await oidc.init("https://bridge/cb", "other-client", "secret", ISSUER)

        after = oidc._config
        assert after.client_id == "other-client"
        assert after.verifier.client_id == "other-client"
        assert before.verifier.client_id == "bridge-client"
        assert after.verifier is not before.verifier

    async def test_malformed_token_endpoint_is_exchange_failure(self, oidc, state_store):
        oidc._config = replace(oidc._config, token_url="https://idp.example.com:notaport/token")
        state_store.states["S1"] = "S1"

        with pytest.raises(ExchangeFailed):
            await oidc.get_user_info("S1", "C1")


class TestIdTokenVerification:
    async def test_verified_email_becomes_identity(self, oidc, state_store):
        state_store.states["S1"] = "S1"

        user = await oidc.get_user_info("S1", "C1")

        assert user.primary_identifier == "carol@example.com"
        assert user.raw_claims["sub"] == "user-1"
        assert "id_token" in user.access_token

    async def test_jwks_fetched_once(self, oidc, state_store, idp):
        state_store.states.update({"S1": "S1", "S2": "S2"})

        await oidc.get_user_info("S1", "C1")
        await oidc.get_user_info("S2", "C2")

        assert idp.paths().count("idp.example.com/jwks") == 1

    async def test_foreign_signature_rejected(self, oidc, state_store, idp, make_id_token, rogue_key):
        state_store.states["S1"] = "S1"
        idp.id_token = make_id_token(key=rogue_key)

        with pytest.raises(IdentityVerificationFailed):
            await oidc.get_user_info("S1", "C1")

    @pytest.mark.parametrize(
        "overrides",
        [
            {"aud": "someone-else"},
            {"iss": "https://evil.example.com"},
            {"exp": 1000},
        ],
    )
    async def test_claim_mismatch_rejected(self, oidc, state_store, idp, make_id_token, overrides):
        state_store.states["S1"] = "S1"
        idp.id_token = make_id_token(**overrides)

        with pytest.raises(IdentityVerificationFailed):
            await oidc.get_user_info("S1", "C1")

    async def test_missing_id_token_rejected(self, oidc, state_store, idp):
        state_store.states["S1"] = "S1"
        idp.token_payload = {"access_token": "at-1", "token_type": "bearer"}

        with pytest.raises(IdentityVerificationFailed, match="id_token"):
            await oidc.get_user_info("S1", "C1")

    async def test_garbage_id_token_rejected(self, oidc, state_store, idp):
        state_store.states["S1"] = "S1"
        idp.id_token = "not.a.jwt"

        with pytest.raises(IdentityVerificationFailed):
            await oidc.get_user_info("S1", "C1")

    async def test_missing_email_claim_rejected(self, oidc, state_store, idp, make_id_token):
        state_store.states["S1"] = "S1"
        idp.id_token = make_id_token(email=None)

        with pytest.raises(IdentityVerificationFailed):
            await oidc.get_user_info("S1", "C1")

    async def test_runtime_fault_is_reclassified(self, oidc, state_store):
        state_store.states["S1"] = "S1"
        oidc._config.verifier.verify = AsyncMock(side_effect=RuntimeError("boom"))

        with pytest.raises(IdentityVerificationFailed):
            await oidc.get_user_info("S1", "C1")

    async def test_verification_failure_creates_no_user(
        self, oidc, state_store, idp, make_id_token, rogue_key, user_store, issuer
    ):
        state_store.states["S1"] = "S1"
        idp.id_token = make_id_token(key=rogue_key)

        with pytest.raises(IdentityVerificationFailed):
            await oidc.handle_callback(_request(state="S1", code="C1"))

        assert user_store.calls == []
        assert issuer.issue_calls == []
