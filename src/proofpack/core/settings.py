"""Process-wide settings.

get_settings() reads the environment once per process. A configuration
that does not validate stops the process at startup with a list of the
offending fields, rather than failing on the first request that needs
them. Tests call clear_settings_cache() after changing the environment.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import ValidationError

from proofpack.core.config import ConfigValidationError, Settings, validate_settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _describe(errors: ValidationError) -> str:
    return "\n".join(
        f"  {'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in errors.errors()
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings for this process.

    Raises:
        SystemExit: The environment holds an invalid configuration.
    """
    try:
        settings = Settings()  # type: ignore[call-arg]
        validate_settings(settings)
    except ValidationError as e:
        logger.critical("Invalid PROOFPACK_ configuration:\n%s", _describe(e))
        raise SystemExit(1) from e
    except ConfigValidationError as e:
        logger.critical("Refusing to start: %s [%s]", e.message, e.field or "?")
        raise SystemExit(1) from e

    logger.info(
        "Settings loaded for %s (block on critical findings: %s)",
        settings.environment.value,
        settings.review.block_approval_on_critical_findings,
    )
    return settings


def clear_settings_cache() -> None:
    get_settings.cache_clear()


def configure_logging(settings: Settings | None = None) -> None:
    """Send log records to stderr at the configured level."""
    level = (settings or get_settings()).log_level
    logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT)
