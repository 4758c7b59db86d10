"""
api/main.py -- The TeamRoster FastAPI application.

Serve with:    uvicorn api.main:app --reload

Request path, outside in (Starlette puts the last middleware added outermost):
  log_requests -> SlowAPIMiddleware -> CORSMiddleware -> TrustedHostMiddleware
  -> /api/v1 routers.

Stores and services are built in the lifespan and parked on app.state.
Route handlers pull them from request.app.state and nowhere else.

Every response, error or not, uses the envelope from api/models.py.
Domain errors carry their own status and code (core/errors.py); the handlers
below only translate them.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import HealthResponse, fail
from api.routes.v1.auth import router as auth_router
from api.routes.v1.teams import router as teams_router
from auth.service import AuthService
from auth.store import UserStore
from core.config import get_settings
from core.errors import TeamRosterError
from teams.service import TeamService
from teams.store import TeamStore

__version__ = "0.1.0"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("teamroster.api")

_settings = get_settings()


def wire_services(app: FastAPI, user_store: UserStore, team_store: TeamStore) -> None:
    """Put the stores and the services over them on app.state.

    Account deletion is hooked to TeamStore.purge_user here, so the test
    lifespan in tests/conftest.py gets the same cascade as production.
    """
    app.state.user_store = user_store
    app.state.team_store = team_store
    app.state.auth_service = AuthService(user_store, on_account_deleted=[team_store.purge_user])
    app.state.team_service = TeamService(team_store, user_store)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    user_store = UserStore(_settings.database_url)
    team_store = TeamStore(_settings.database_url)
    wire_services(app, user_store, team_store)
    logger.info("TeamRoster %s up, %d registered user(s)", __version__, user_store.count_users())
    try:
        yield
    finally:
        team_store.close()
        user_store.close()
        logger.info("TeamRoster stopped")


app = FastAPI(
    title="TeamRoster API",
    description="Bearer-token authentication and owner-gated team membership.",
    version=__version__,
    lifespan=lifespan,
)

# Each add_middleware() wraps the ones before it; log_requests below wraps all.
app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)
app.add_middleware(SlowAPIMiddleware)
app.state.limiter = limiter  # SlowAPIMiddleware finds the limiter here


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """One access-log line per request: method, path, status, latency, client."""
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s -> %d (%.1fms) from %s",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
        request.client.host if request.client else "-",
    )
    return response


app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(teams_router, prefix="/api/v1", tags=["Teams"])


# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------


def _envelope_error(status_code: int, code: str, errors: list[str], headers: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=fail(code, errors), headers=headers)


@app.exception_handler(TeamRosterError)
async def domain_error_handler(request: Request, exc: TeamRosterError) -> JSONResponse:
    return _envelope_error(exc.status_code, exc.code, exc.errors)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 with Retry-After, in seconds."""
    logger.warning("Rate limit hit on %s from %s", request.url.path, request.client.host if request.client else "-")
    retry_after = str(exc.limit.limit.get_expiry())
    return _envelope_error(429, "rate_limited", ["Too many requests."], headers={"Retry-After": retry_after})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 with one "field: problem" line per invalid input."""
    messages = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        messages.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return _envelope_error(422, "validation_error", messages or ["Request validation failed."])


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown route, wrong method and friends."""
    return _envelope_error(exc.status_code, f"http_{exc.status_code}", [str(exc.detail)], getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Storage errors can describe the schema; keep them in the log only.
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _envelope_error(500, "internal_error", ["Something went wrong!"])


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Liveness plus a trivial query against each store. Unauthenticated, not rate-limited."""
    stores_ok = request.app.state.user_store.ping() and request.app.state.team_store.ping()
    return HealthResponse(
        status="healthy" if stores_ok else "degraded",
        version=__version__,
        components={"app": "ok", "database": "ok" if stores_ok else "error"},
    )
