"""Core configuration and domain errors."""

from proofpack.core.config import (
    ConfigValidationError,
    Environment,
    Settings,
    validate_settings,
)
from proofpack.core.errors import (
    AccessDeniedError,
    DependencyError,
    NotFoundError,
    ProofPackError,
    StateConflictError,
    ValidationError,
)
from proofpack.core.settings import clear_settings_cache, get_settings

__all__ = [
    "AccessDeniedError",
    "ConfigValidationError",
    "DependencyError",
    "Environment",
    "NotFoundError",
    "ProofPackError",
    "Settings",
    "StateConflictError",
    "ValidationError",
    "clear_settings_cache",
    "get_settings",
    "validate_settings",
]
