"""Domain error taxonomy.

Every error raised by the services derives from ProofPackError and maps to
exactly one HTTP status in the API error middleware:

- ValidationError: 400, with field-level errors
- AccessDeniedError: 403, uniform message
- NotFoundError: 404
- StateConflictError: 409, with the authoritative current state
- DependencyError: 503, naming the failed collaborator
"""

from __future__ import annotations

from typing import Any

ACCESS_DENIED_MESSAGE = "Access denied"


class ProofPackError(Exception):
    """Base class for domain errors."""

    code: str = "error"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_detail(self) -> dict[str, Any] | None:
        """Return the structured detail included in API error bodies."""
        return None


class ValidationError(ProofPackError):
    """Input failed a domain rule.

    Attributes:
        errors: Mapping of field name to message.
    """

    code = "validation_error"
    status_code = 400

    def __init__(
        self,
        message: str,
        errors: dict[str, str] | None = None,
        **context: Any,
    ) -> None:
        self.errors = errors or {}
        self.context = context
        super().__init__(message)

    def to_detail(self) -> dict[str, Any] | None:
        detail: dict[str, Any] = {}
        if self.errors:
            detail["errors"] = self.errors
        detail.update(self.context)
        return detail or None


class StateConflictError(ProofPackError):
    """An operation lost a race or is not allowed in the entity's current state.

    Attributes:
        current_state: Authoritative state of the entity at the time of the conflict.
    """

    code = "state_conflict"
    status_code = 409

    def __init__(self, message: str, current_state: dict[str, Any] | None = None) -> None:
        self.current_state = current_state or {}
        super().__init__(message)

    def to_detail(self) -> dict[str, Any] | None:
        return {"current_state": self.current_state}


class NotFoundError(ProofPackError):
    """A referenced entity does not exist."""

    code = "not_found"
    status_code = 404

    def __init__(self, resource: str, identifier: Any) -> None:
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")

    def to_detail(self) -> dict[str, Any] | None:
        return {"resource": self.resource, "id": str(self.identifier)}


class AccessDeniedError(ProofPackError):
    """Caller may not access the resource.

    The public message is always the same so that callers cannot
    distinguish unknown, expired and revoked share tokens. The reason is
    kept for server-side logging only.
    """

    code = "access_denied"
    status_code = 403

    def __init__(self, reason: str = "") -> None:
        self.reason = reason
        super().__init__(ACCESS_DENIED_MESSAGE)


class DependencyError(ProofPackError):
    """An external collaborator failed or timed out."""

    code = "dependency_unavailable"
    status_code = 503

    def __init__(self, dependency: str, message: str | None = None) -> None:
        self.dependency = dependency
        super().__init__(message or f"{dependency} is unavailable")

    def to_detail(self) -> dict[str, Any] | None:
        return {"dependency": self.dependency}
