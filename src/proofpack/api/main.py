"""Proof Pack API service entry point.

Provides the application instance for ASGI servers (uvicorn) and a run()
function for the proofpack-api console script.
"""

import logging

from proofpack.api import create_app
from proofpack.core.settings import configure_logging, get_settings

logger = logging.getLogger(__name__)

settings = get_settings()
configure_logging(settings)

# What uvicorn references: proofpack.api.main:app
app = create_app(settings)


def run() -> None:
    """Run the API server using uvicorn."""
    import uvicorn

    logger.info("Starting Proof Pack API on %s:%d", settings.api_host, settings.api_port)

    uvicorn.run(
        "proofpack.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


if __name__ == "__main__":
    run()
