"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The only credential is an Authorization: Bearer <token> header. Each request
is resolved from scratch by auth/session.resolve_current_user().

resolve_session() is the soft variant: returns the SessionResult as is.
get_current_user() wraps it and raises Unauthorized (401) unless the request
is AUTHENTICATED. Unauthorized is a core/errors.py error, so api/main.py's
handler renders it in the same envelope as every other failure.

Layer rule: no imports from teams/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import SessionResult, User
from auth.session import bearer_token_from_header, resolve_current_user
from core.errors import Unauthorized


def request_token(request: Request) -> str | None:
    """Return the bearer token presented on this request, if any."""
    return bearer_token_from_header(request.headers.get("Authorization"))


def resolve_session(request: Request) -> SessionResult:
    """Resolve the request's bearer token. Never raises for a bad token."""
    return resolve_current_user(request.app.state.user_store, request_token(request))


def get_current_user(request: Request) -> User:
    """Require authentication. Raises Unauthorized (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    result = resolve_session(request)
    if not result.is_authenticated:
        raise Unauthorized()
    return result.user
