"""
auth/tokens.py -- Bearer tokens and password hashes.

Tokens:
  HS256 JWTs via python-jose, signed with Settings.secret_key. Claims are
  sub (user id as a string), iat and exp, nothing else. Validation is pure
  computation with no database round trip. Nothing can revoke a token before
  its exp, hence the one-hour default lifetime.

  validate_access_token() only answers "is this a well-formed, unexpired
  token we signed". Whether the user behind it still exists is decided by
  auth/session.py.

Passwords:
  bcrypt without a passlib wrapper. authenticate_user() burns one bcrypt
  check against _DUMMY_HASH when the email is unknown, so response time does
  not reveal which emails are registered [C1].

Layer rule: no imports from api/ or teams/.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings
from core.errors import InvalidToken

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

_settings = get_settings()
_ALGORITHM = "HS256"


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """bcrypt-hash a password with a fresh salt.

    bcrypt raises ValueError past 72 bytes; AuthService.register rejects longer
    passwords before they get here.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # stored hash is not a bcrypt hash
        return False


# Hashed at import so the first unknown-email login costs the same as the rest.
_DUMMY_HASH: str = hash_password("teamroster_timing_dummy")


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


def create_access_token(user_id: int, expire_seconds: int = 0) -> str:
    """Sign a token for user_id.

    expire_seconds=0 means Settings.token_expire_seconds. A negative value
    yields a token that is already expired.
    """
    lifetime = timedelta(seconds=expire_seconds or _settings.token_expire_seconds)
    issued = datetime.now(timezone.utc)
    claims = {"sub": str(user_id), "iat": issued, "exp": issued + lifetime}
    return jwt.encode(claims, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Return the verified claims, or None if the token is unusable for any reason."""
    try:
        claims = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    return claims if "sub" in claims else None


def validate_access_token(token: str) -> int:
    """Return the user id a token is bound to, or raise InvalidToken.

    A non-integer sub is treated like a bad signature.
    """
    claims = decode_access_token(token)
    if claims is None:
        raise InvalidToken()
    try:
        return int(claims["sub"])
    except (TypeError, ValueError) as exc:
        raise InvalidToken() from exc


# ---------------------------------------------------------------------------
# Credential check [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Return the user if email and password match, else None.

    bcrypt runs exactly once on every path, against the stored hash or
    against _DUMMY_HASH, so a miss on the email costs as much as a miss on
    the password.
    """
    user = store.get_by_email(email)
    candidate = user.hashed_password if user is not None else _DUMMY_HASH
    matched = verify_password(password, candidate)
    if user is None or not matched:
        return None
    return user
