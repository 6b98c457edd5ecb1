"""Caller identity passed into the services."""

from __future__ import annotations

from dataclasses import dataclass, field

ROLE_PLATFORM_ADMIN = "platform_admin"
ROLE_QA_REVIEWER = "qa_reviewer"
ROLE_BUYER = "buyer"
ROLE_SME = "sme"

REVIEWER_ROLES = frozenset({ROLE_QA_REVIEWER, ROLE_PLATFORM_ADMIN})


@dataclass(frozen=True, slots=True)
class Actor:
    """The verified user on whose behalf a service call runs."""

    user_id: str
    roles: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return ROLE_PLATFORM_ADMIN in self.roles

    @property
    def is_reviewer(self) -> bool:
        return bool(self.roles & REVIEWER_ROLES)

    def owns(self, owner_user_id: str) -> bool:
        return self.user_id == owner_user_id
