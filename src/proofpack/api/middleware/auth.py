"""Bearer authentication dependencies.

Every authenticated route verifies the caller's bearer credential with the
identity provider through IdentityClient. Role checks are layered on top
with require_role().

Failures:
- Missing or invalid credential: 401
- Authenticated but lacking the role: 403
- Identity provider unavailable: DependencyError (503)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from proofpack.api.dependencies import get_client_ip, get_identity_client
from proofpack.services.access import ROLE_PLATFORM_ADMIN, Actor
from proofpack.services.identity import IdentityClient

logger = logging.getLogger(__name__)

# Bearer token security scheme for OpenAPI docs
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthenticatedUser:
    """The verified caller of the current request.

    Attributes:
        user_id: Subject identifier from the identity provider
        roles: Role names granted by the identity provider
        email: Email claim, when present
        ip_address: Request IP address
        user_agent: Request user agent
    """

    user_id: str
    roles: frozenset[str] = field(default_factory=frozenset)
    email: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    def has_role(self, role: str) -> bool:
        """Check if the user has a specific role."""
        return role in self.roles

    def to_actor(self) -> Actor:
        """Convert to the service-layer Actor."""
        return Actor(user_id=self.user_id, roles=self.roles)


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_authenticated_user(
    request: Request,
    identity: Annotated[IdentityClient, Depends(get_identity_client)],
    credentials: Annotated[
        HTTPAuthorizationCredentials | None,
        Depends(bearer_scheme),
    ] = None,
) -> AuthenticatedUser:
    """Dependency that requires a verified bearer credential.

    Raises:
        HTTPException: 401 if the credential is missing or not valid.
        DependencyError: If the identity provider cannot be reached.
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Authentication required")

    verified = await identity.verify(credentials.credentials)
    if verified is None:
        logger.info("Bearer credential rejected: path=%s", request.url.path)
        raise _unauthorized("Invalid or expired credential")

    user = AuthenticatedUser(
        user_id=verified.user_id,
        roles=verified.roles,
        email=verified.email,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    request.state.user = user
    return user


def require_role(*roles: str) -> Callable:
    """Factory for role-checking dependencies.

    The caller needs at least one of `roles`; platform admins pass every
    role check.

    Usage:
        @router.post("/review")
        async def review(
            user: Annotated[AuthenticatedUser, Depends(require_role("qa_reviewer"))],
        ):
            ...
    """
    allowed = frozenset(roles) | {ROLE_PLATFORM_ADMIN}

    async def _check_role(
        user: Annotated[AuthenticatedUser, Depends(require_authenticated_user)],
    ) -> AuthenticatedUser:
        if not user.roles & allowed:
            logger.info(
                "Role check failed: user_id=%s, required=%s",
                user.user_id,
                ",".join(sorted(roles)),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role required: {' or '.join(sorted(roles))}",
            )
        return user

    return _check_role


CurrentUser = Annotated[AuthenticatedUser, Depends(require_authenticated_user)]
