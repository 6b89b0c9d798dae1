"""
Mama Mind - Authentication

Resolves ``Authorization: Bearer <token>`` into a Principal.

Backends:
    - StaticTokenAuthenticator: tokens configured in API_TOKENS
      (development and tests)
    - SupabaseAuthenticator: asks Supabase Auth who owns the token

The subject a request acts on is always the principal's own subject id.
Nothing in a request body can choose another subject, except the
clinician-only note alert endpoint.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from typing import Dict, Optional, Protocol, Tuple, runtime_checkable

import httpx
from fastapi import Depends, Request

from mamamind.config import Settings
from mamamind.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    UpstreamUnavailableError,
)
from mamamind.core.types import Principal, Role, SubjectId

logger = logging.getLogger(__name__)


def _parse_role(value: Optional[str]) -> Role:
    try:
        return Role((value or "").lower())
    except ValueError:
        return Role.PATIENT


# =============================================================================
# Protocol
# =============================================================================

@runtime_checkable
class Authenticator(Protocol):
    """Protocol for bearer token verification."""

    @abstractmethod
    async def authenticate(self, token: str) -> Principal:
        """
        Resolve a bearer token.

        Raises:
            AuthenticationError: token unknown, expired or malformed
            UpstreamUnavailableError: identity provider unreachable
        """
        ...

    async def aclose(self) -> None:
        """Release any HTTP clients."""
        ...


# =============================================================================
# Static Tokens
# =============================================================================

class StaticTokenAuthenticator:
    """Authenticator backed by a fixed token table."""

    def __init__(self, token_map: Dict[str, Tuple[str, str]]):
        self._principals = {
            token: Principal(subject_id=SubjectId(subject_id), role=_parse_role(role))
            for token, (subject_id, role) in token_map.items()
        }
        logger.info("StaticTokenAuthenticator initialized with %d token(s)", len(self._principals))

    async def authenticate(self, token: str) -> Principal:
        principal = self._principals.get(token)
        if principal is None:
            raise AuthenticationError("Invalid or expired token")
        return principal

    async def aclose(self) -> None:
        pass


# =============================================================================
# Supabase Auth
# =============================================================================

class SupabaseAuthenticator:
    """
    Verifies tokens against ``{SUPABASE_URL}/auth/v1/user``.

    The role comes from ``user_metadata.role`` and defaults to patient.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        timeout: float = 3.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._user_url = f"{url.rstrip('/')}/auth/v1/user"
        self._anon_key = anon_key
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def authenticate(self, token: str) -> Principal:
        try:
            response = await self._client.get(
                self._user_url,
                headers={
                    "apikey": self._anon_key,
                    "Authorization": f"Bearer {token}",
                },
            )
        except httpx.HTTPError as e:
            logger.warning("Supabase auth unreachable: %s", e)
            raise UpstreamUnavailableError("Authentication provider unavailable") from e

        if response.status_code >= 500:
            logger.warning("Supabase auth returned %d", response.status_code)
            raise UpstreamUnavailableError("Authentication provider unavailable")
        if response.status_code != 200:
            raise AuthenticationError("Invalid or expired token")

        try:
            user = response.json()
        except ValueError as e:
            raise UpstreamUnavailableError("Authentication provider returned malformed data") from e

        subject_id = user.get("id")
        if not subject_id:
            raise AuthenticationError("Invalid or expired token")

        metadata = user.get("user_metadata") or {}
        return Principal(subject_id=SubjectId(subject_id), role=_parse_role(metadata.get("role")))

    async def aclose(self) -> None:
        await self._client.aclose()


# =============================================================================
# Factory Function
# =============================================================================

def create_authenticator(settings: Settings) -> Authenticator:
    """
    Create an authenticator based on settings.

    Args:
        settings: Application settings

    Returns:
        Configured Authenticator instance
    """
    backend = settings.auth_backend.lower()

    if backend == "static":
        if settings.is_production:
            logger.warning("Static token authentication enabled in production")
        return StaticTokenAuthenticator(settings.api_token_map)

    if backend == "supabase":
        if not settings.supabase_url or not settings.supabase_anon_key:
            raise ConfigurationError(
                "SUPABASE_URL and SUPABASE_ANON_KEY are required for supabase auth",
            )
        logger.info("Using SupabaseAuthenticator")
        return SupabaseAuthenticator(
            url=settings.supabase_url,
            anon_key=settings.supabase_anon_key,
            timeout=settings.auth_timeout_seconds,
        )

    raise ConfigurationError(
        f"Unknown auth backend: {settings.auth_backend!r}",
        details={"allowed": ["static", "supabase"]},
    )


# =============================================================================
# Dependencies
# =============================================================================

def bearer_token(authorization: Optional[str]) -> str:
    """Extract the token from an Authorization header value."""
    if not authorization:
        raise AuthenticationError("Missing bearer token")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Malformed Authorization header")
    return token.strip()


async def get_current_principal(request: Request) -> Principal:
    """Dependency resolving the caller from the Authorization header."""
    authenticator: Authenticator = request.app.state.authenticator
    token = bearer_token(request.headers.get("Authorization"))
    return await authenticator.authenticate(token)


async def require_clinician(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Dependency that only admits clinicians."""
    if not principal.is_clinician:
        raise AuthorizationError("Clinician role required")
    return principal
