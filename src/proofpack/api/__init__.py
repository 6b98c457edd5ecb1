"""HTTP surface of Proof Pack.

create_app() builds the FastAPI application served by proofpack-api and
used directly by the tests. Every namespace lives under /api.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from proofpack.api.middleware import ErrorHandlerMiddleware, RequestIDMiddleware
from proofpack.api.middleware.request_id import REQUEST_ID_HEADER
from proofpack.api.routers import (
    admin_router,
    directory_router,
    introductions_router,
    proof_packs_router,
    qa_router,
    share_router,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from proofpack.core.config import Settings

logger = logging.getLogger(__name__)

API_TITLE = "Proof Pack API"
API_DESCRIPTION = """
Pack Health scoring, human QA review and NDA-gated disclosure of SME
compliance evidence.

| Prefix | Caller |
|---|---|
| `/api/proof-packs` | pack owners: documents, score, gaps, share links |
| `/api/qa` | QA reviewers: queue, decisions, findings |
| `/api/share` | share-link holders |
| `/api/directory` | buyers browsing eligible SMEs |
| `/api/introductions` | buyers contacting an SME |
| `/api/admin` | platform admins: audit chain and job backlog |
"""

DEFAULT_CORS_ORIGINS = ["http://localhost:3000"]
ROUTERS = (
    proof_packs_router,
    qa_router,
    share_router,
    directory_router,
    introductions_router,
    admin_router,
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # Clients are created on first use by the dependencies.
    for name in ("identity_client", "notifier"):
        if (client := getattr(app.state, name, None)) is not None:
            await client.aclose()

    from proofpack.db import close_engine

    await close_engine()
    logger.info("API stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Stored on app.state. When None, dependencies load the
            environment settings on first use.
    """
    version = settings.app_version if settings else "0.1.0"
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=version,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Last added runs first: CORS, then request id, then the error handler.
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins if settings else DEFAULT_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )

    for router in ROUTERS:
        app.include_router(router, prefix="/api")

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    logger.debug("Application %s %s built", API_TITLE, version)
    return app
