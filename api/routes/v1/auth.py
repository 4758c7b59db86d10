"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST   /api/v1/auth/register      -- create account; returns bearer token
  POST   /api/v1/auth/login         -- password login; returns bearer token
  GET    /api/v1/auth/current-user  -- user for the presented token, or null
  POST   /api/v1/auth/logout        -- no-op acknowledgement (tokens are stateless)
  DELETE /api/v1/auth/delete        -- delete own account (password re-check)

Security:
  [H2] register and login are rate-limited per IP (settings-driven).
  [C1] AuthService.login() goes through authenticate_user(), which provides
       timing equalization -- never inline get_by_email() + verify_password().
  [M5] Cache-Control: no-store on every response that carries a token.

Failures are raised as core/errors.py exceptions and rendered by the
TeamRosterError handler in api/main.py.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit, register_limit
from api.models import DeleteAccountRequest, Envelope, LoginRequest, RegisterRequest, UserResponse, fail, ok
from auth.dependencies import get_current_user, resolve_session
from auth.models import SessionStatus, User
from auth.service import AuthService
from core.errors import InvalidCredentials, InvalidToken

logger = logging.getLogger("teamroster.api")

# Auth policy:
# - POST   /api/v1/auth/register:      public
# - POST   /api/v1/auth/login:         public
# - GET    /api/v1/auth/current-user:  public -- anonymous callers get data=null
# - POST   /api/v1/auth/logout:        public -- the client discards its own token
# - DELETE /api/v1/auth/delete:        requires auth (get_current_user)
router = APIRouter()


def _no_store(content: dict, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=content)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=Envelope, status_code=201)
@limiter.limit(register_limit)  # [H2] below @router, so FastAPI registers the limited function
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account and return a bearer token in data."""
    service: AuthService = request.app.state.auth_service
    token = service.register(body.email, body.password, body.name)
    return _no_store(ok(data=token, msg="User successfully registered!"), status_code=201)


@router.post("/auth/login", response_model=Envelope)
@limiter.limit(login_limit)  # [H2]
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a bearer token in data.

    Unknown email and wrong password produce the same 401 body.
    """
    service: AuthService = request.app.state.auth_service
    try:
        token = service.login(body.email, body.password)
    except InvalidCredentials as exc:
        return _no_store(fail(exc.code, exc.errors), status_code=exc.status_code)
    return _no_store(ok(data=token, msg="Logged in successfully!"))


@router.get("/auth/current-user", response_model=Envelope)
def current_user(request: Request) -> dict:
    """Return the user the bearer token belongs to.

    No token -> success with data=null. A bad token, or one whose user has
    been deleted -> 401 invalid_token.
    """
    result = resolve_session(request)
    if result.status is SessionStatus.INVALID:
        raise InvalidToken()
    if result.user is None:
        return ok(data=None, msg="No active session")
    return ok(data=UserResponse.from_user(result.user).model_dump(), msg="User successfully fetched")


@router.post("/auth/logout", response_model=Envelope)
def logout() -> dict:
    """Acknowledge a logout. The server holds no session to destroy."""
    return ok(msg="Logged out.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.delete("/auth/delete", response_model=Envelope)
def delete_account(
    request: Request,
    body: DeleteAccountRequest,
    current_user: User = Depends(get_current_user),
) -> dict:
    """Delete the caller's account after re-checking the password.

    Teams the caller owns are deleted with the account.
    """
    service: AuthService = request.app.state.auth_service
    service.delete_account(current_user, body.password)
    return ok(msg="Account successfully deleted")
