"""JSON error envelope for every failed request.

Body shape: {"error": <code>, "message": <text>, "request_id": ..., "detail": ...}.
request_id and detail are left out when empty. Access denials never carry
detail, so a caller cannot tell a missing resource from a forbidden one.
"""

import logging
from collections.abc import Callable
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from proofpack.api.middleware.request_id import get_request_id
from proofpack.core.errors import AccessDeniedError, ProofPackError

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "An internal error occurred"


def build_error_response(
    error: str,
    message: str,
    status_code: int,
    detail: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {"error": error, "message": message}
    if request_id := get_request_id():
        body["request_id"] = request_id
    if detail:
        body["detail"] = detail
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def domain_error_response(exc: ProofPackError) -> JSONResponse:
    """Map a domain error to its status code and envelope."""
    detail = None
    if isinstance(exc, AccessDeniedError):
        # The reason is only for the server log.
        if exc.reason:
            logger.info("Denied: %s", exc.reason)
    else:
        detail = exc.to_detail()
        if exc.status_code >= 500:
            logger.warning("%s: %s", exc.code, exc.message)
    return build_error_response(exc.code, exc.message, exc.status_code, detail=detail)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turns exceptions escaping a route into error envelopes.

    Domain errors keep their own code; stray HTTPException and pydantic
    errors are wrapped; anything else becomes a logged 500.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        try:
            return await call_next(request)
        except ProofPackError as exc:
            return domain_error_response(exc)
        except HTTPException as exc:
            return build_error_response(
                "http_error", str(exc.detail), exc.status_code, headers=exc.headers
            )
        except ValidationError as exc:
            return build_error_response(
                "validation_error",
                "Invalid data",
                422,
                detail={"errors": exc.errors(include_url=False)},
            )
        except Exception:
            logger.exception("Unhandled error in %s %s", request.method, request.url.path)
            return build_error_response("internal_error", INTERNAL_ERROR_MESSAGE, 500)
