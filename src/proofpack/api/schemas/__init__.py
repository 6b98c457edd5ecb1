"""Pydantic schemas for the Proof Pack API.

Request/response schemas organized by API namespace.
"""

from proofpack.api.schemas.common import DocumentSchema, ErrorResponse, PackHealthSchema

__all__ = [
    "DocumentSchema",
    "ErrorResponse",
    "PackHealthSchema",
]
