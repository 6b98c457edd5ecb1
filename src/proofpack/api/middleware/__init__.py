"""Request pipeline pieces shared by all routers.

RequestIDMiddleware runs outermost so that error bodies carry the request
id; ErrorHandlerMiddleware renders the error envelope; the auth helpers
are FastAPI dependencies resolving the bearer token to a user.
"""

from proofpack.api.middleware.auth import (
    AuthenticatedUser,
    CurrentUser,
    require_authenticated_user,
    require_role,
)
from proofpack.api.middleware.errors import ErrorHandlerMiddleware
from proofpack.api.middleware.request_id import RequestIDMiddleware

__all__ = [
    "AuthenticatedUser",
    "CurrentUser",
    "ErrorHandlerMiddleware",
    "RequestIDMiddleware",
    "require_authenticated_user",
    "require_role",
]
