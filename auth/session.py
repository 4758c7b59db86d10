"""
auth/session.py -- Per-request current-user resolution.

A session is never stored. Every request's bearer token is resolved from
scratch into one of three outcomes:

  ANONYMOUS      -- no token was presented. Not an error.
  INVALID        -- the token failed validation, or it names a user that no
                    longer exists (account deleted after issuance).
  AUTHENTICATED  -- the token is valid and its user exists.

No result is cached between requests, so any process can serve any request.

Layer rule: no imports from api/ or teams/.
"""

from __future__ import annotations

import logging

from auth.models import SessionResult, SessionStatus
from auth.store import UserStore
from auth.tokens import validate_access_token
from core.errors import InvalidToken

logger = logging.getLogger("teamroster.auth")

_BEARER_PREFIX = "Bearer "


def bearer_token_from_header(header_value: str | None) -> str | None:
    """Extract the token from an Authorization header value.

    Returns None when the header is missing, uses another scheme, or carries
    an empty token -- all of which mean "no credential presented".
    """
    if not header_value or not header_value.startswith(_BEARER_PREFIX):
        return None
    token = header_value[len(_BEARER_PREFIX) :].strip()
    return token or None


def resolve_current_user(store: UserStore, token: str | None) -> SessionResult:
    """Resolve a bearer token (or its absence) into a SessionResult."""
    if not token:
        return SessionResult(SessionStatus.ANONYMOUS)

    try:
        user_id = validate_access_token(token)
    except InvalidToken:
        return SessionResult(SessionStatus.INVALID)

    user = store.get_by_id(user_id)
    if user is None:
        logger.info("Token presented for missing user id=%s", user_id)
        return SessionResult(SessionStatus.INVALID)
    return SessionResult(SessionStatus.AUTHENTICATED, user)
