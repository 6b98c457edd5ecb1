"""API namespace routers.

Each router is mounted under /api and exposes its own /health endpoint.
"""

from proofpack.api.routers.admin import router as admin_router
from proofpack.api.routers.directory import router as directory_router
from proofpack.api.routers.introductions import router as introductions_router
from proofpack.api.routers.proof_packs import router as proof_packs_router
from proofpack.api.routers.qa import router as qa_router
from proofpack.api.routers.share import router as share_router

__all__ = [
    "admin_router",
    "directory_router",
    "introductions_router",
    "proof_packs_router",
    "qa_router",
    "share_router",
]
