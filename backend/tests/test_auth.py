"""
Mama Mind - Authentication Tests

Tests for the static token table, the Supabase authenticator (against an
httpx MockTransport) and the authenticator factory.

Run with: pytest tests/test_auth.py -v
"""

import httpx
import pytest

from mamamind.api.auth import (
    StaticTokenAuthenticator,
    SupabaseAuthenticator,
    bearer_token,
    create_authenticator,
)
from mamamind.config import Settings
from mamamind.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    UpstreamUnavailableError,
)
from mamamind.core.types import Role


SUPABASE_URL = "https://project.supabase.co"


def supabase_with(handler) -> SupabaseAuthenticator:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SupabaseAuthenticator(url=SUPABASE_URL, anon_key="anon-key", client=client)


class TestBearerToken:

    def test_extracts_token(self):
        assert bearer_token("Bearer abc123") == "abc123"
        assert bearer_token("bearer abc123") == "abc123"

    @pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer", "Bearer   "])
    def test_rejects_missing_or_malformed(self, header):
        with pytest.raises(AuthenticationError):
            bearer_token(header)


class TestStaticTokens:

    @pytest.mark.asyncio
    async def test_known_token(self):
        auth = StaticTokenAuthenticator({"t1": ("patient-1", "patient"), "t2": ("doc", "clinician")})

        patient = await auth.authenticate("t1")
        clinician = await auth.authenticate("t2")

        assert patient.subject_id == "patient-1"
        assert patient.role == Role.PATIENT
        assert clinician.is_clinician

    @pytest.mark.asyncio
    async def test_unknown_role_is_patient(self):
        auth = StaticTokenAuthenticator({"t1": ("patient-1", "admin")})
        assert (await auth.authenticate("t1")).role == Role.PATIENT

    @pytest.mark.asyncio
    async def test_unknown_token(self):
        auth = StaticTokenAuthenticator({})
        with pytest.raises(AuthenticationError):
            await auth.authenticate("nope")

    def test_settings_token_map(self):
        settings = Settings(api_tokens="a=subject-a:clinician, b=subject-b ,broken,=x:patient")
        assert settings.api_token_map == {
            "a": ("subject-a", "clinician"),
            "b": ("subject-b", "patient"),
        }


class TestSupabaseAuthenticator:

    @pytest.mark.asyncio
    async def test_valid_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["apikey"] = request.headers["apikey"]
            return httpx.Response(200, json={"id": "user-1", "user_metadata": {"role": "clinician"}})

        auth = supabase_with(handler)
        principal = await auth.authenticate("jwt-token")
        await auth.aclose()

        assert principal.subject_id == "user-1"
        assert principal.role == Role.CLINICIAN
        assert seen == {
            "url": f"{SUPABASE_URL}/auth/v1/user",
            "auth": "Bearer jwt-token",
            "apikey": "anon-key",
        }

    @pytest.mark.asyncio
    async def test_missing_role_defaults_to_patient(self):
        auth = supabase_with(lambda request: httpx.Response(200, json={"id": "user-1"}))
        assert (await auth.authenticate("jwt")).role == Role.PATIENT

    @pytest.mark.asyncio
    async def test_rejected_token(self):
        auth = supabase_with(lambda request: httpx.Response(401, json={"message": "invalid JWT"}))
        with pytest.raises(AuthenticationError):
            await auth.authenticate("expired")

    @pytest.mark.asyncio
    async def test_provider_error_is_upstream_unavailable(self):
        auth = supabase_with(lambda request: httpx.Response(502))
        with pytest.raises(UpstreamUnavailableError):
            await auth.authenticate("jwt")

    @pytest.mark.asyncio
    async def test_network_error_is_upstream_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        auth = supabase_with(handler)
        with pytest.raises(UpstreamUnavailableError):
            await auth.authenticate("jwt")


class TestFactory:

    def test_static_backend(self):
        auth = create_authenticator(Settings(auth_backend="static"))
        assert isinstance(auth, StaticTokenAuthenticator)

    def test_supabase_requires_url_and_key(self):
        with pytest.raises(ConfigurationError):
            create_authenticator(Settings(auth_backend="supabase", supabase_url="", supabase_anon_key=""))

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            create_authenticator(Settings(auth_backend="ldap"))
