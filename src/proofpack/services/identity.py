"""Bearer credential verification against the identity provider.

The identity provider exposes an OAuth 2.0 token introspection endpoint
(RFC 7662). An active token yields the caller id (`sub`) and its role
claims; anything else is treated as an invalid credential.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from proofpack.core.errors import DependencyError

if TYPE_CHECKING:
    from proofpack.core.config import IdentitySettings

logger = logging.getLogger(__name__)

IDENTITY_PROVIDER = "identity_provider"


@dataclass(frozen=True, slots=True)
class VerifiedIdentity:
    """Caller identity returned by the identity provider."""

    user_id: str
    roles: frozenset[str] = field(default_factory=frozenset)
    email: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)


def _parse_roles(claims: dict[str, Any]) -> frozenset[str]:
    roles = claims.get("roles")
    if roles is None:
        scope = claims.get("scope") or ""
        return frozenset(s for s in scope.split() if s)
    if isinstance(roles, str):
        return frozenset([roles])
    return frozenset(str(r) for r in roles)


class IdentityClient:
    """Verifies bearer credentials through token introspection."""

    def __init__(
        self,
        introspection_url: str,
        client_secret: str = "",
        timeout: float = 3.0,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            introspection_url: Introspection endpoint of the identity provider.
            client_secret: Secret authenticating this service to the provider.
            timeout: Seconds allowed for one verification.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self._introspection_url = introspection_url
        self._client_secret = client_secret
        self._timeout = timeout
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: IdentitySettings) -> IdentityClient:
        return cls(
            introspection_url=settings.introspection_url,
            client_secret=settings.client_secret.get_secret_value(),
            timeout=settings.timeout,
        )

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def verify(self, token: str) -> VerifiedIdentity | None:
        """Verify a bearer credential.

        Args:
            token: Raw bearer token presented by the caller.

        Returns:
            The verified identity, or None if the token is not valid.

        Raises:
            DependencyError: If the provider times out, is unreachable or
                answers with a server error.
        """
        headers = {}
        if self._client_secret:
            headers["Authorization"] = f"Bearer {self._client_secret}"

        try:
            response = await self._get_http_client().post(
                self._introspection_url,
                data={"token": token},
                headers=headers,
            )
        except httpx.TimeoutException as e:
            logger.warning("Identity provider timed out: %s", e)
            raise DependencyError(IDENTITY_PROVIDER, "Identity provider timed out") from e
        except httpx.RequestError as e:
            logger.warning("Identity provider request failed: %s", e)
            raise DependencyError(IDENTITY_PROVIDER) from e

        if response.status_code >= 500:
            logger.warning("Identity provider returned status %d", response.status_code)
            raise DependencyError(IDENTITY_PROVIDER)
        if response.status_code != 200:
            return None

        try:
            claims = response.json()
        except ValueError as e:
            raise DependencyError(
                IDENTITY_PROVIDER, "Identity provider returned malformed JSON"
            ) from e

        if not claims.get("active") or not claims.get("sub"):
            return None

        return VerifiedIdentity(
            user_id=str(claims["sub"]),
            roles=_parse_roles(claims),
            email=claims.get("email"),
            claims=claims,
        )
