"""
auth/service.py -- Registration, login, account deletion and current-user lookup.

This is the server side of the session lifecycle. It is called by the HTTP
routes in api/routes/v1/auth.py and by auth/workflow.py, and raises errors
from core/errors.py rather than HTTPException.

Account deletion runs the registered on_account_deleted hooks before the user
row is removed. api/main.py wires TeamStore.purge_user in here, which keeps this
module free of any import from teams/.

Layer rule: no imports from api/ or teams/.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable

from sqlalchemy.exc import IntegrityError

from auth.models import SessionStatus, User
from auth.session import resolve_current_user
from auth.store import UserStore, normalize_email
from auth.tokens import authenticate_user, create_access_token, hash_password, verify_password
from core.config import get_settings
from core.errors import DuplicateEmail, InvalidCredentials, InvalidToken, RegistrationClosed, ValidationError

logger = logging.getLogger("teamroster.auth")

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
_EMAIL_RE = re.compile(EMAIL_PATTERN)
# bcrypt refuses longer input
_BCRYPT_MAX_BYTES = 72

AccountDeletedHook = Callable[[int], object]


class AuthService:
    """Server-side authentication operations over a UserStore."""

    def __init__(self, store: UserStore, on_account_deleted: Iterable[AccountDeletedHook] = ()) -> None:
        self._store = store
        self._on_account_deleted = list(on_account_deleted)

    def register(self, email: str, password: str, name: str) -> str:
        """Create a user and return a bearer token for it."""
        settings = get_settings()
        if not settings.self_registration_enabled:
            raise RegistrationClosed()

        email = normalize_email(email or "")
        name = (name or "").strip()
        if not _EMAIL_RE.match(email):
            raise ValidationError("Please provide a valid email")
        if not name:
            raise ValidationError("Please provide a name")
        if len(password or "") < settings.password_min_length:
            raise ValidationError(f"Password must be at least {settings.password_min_length} characters")
        if len(password.encode("utf-8")) > _BCRYPT_MAX_BYTES:
            raise ValidationError(f"Password must be at most {_BCRYPT_MAX_BYTES} bytes")

        if self._store.get_by_email(email) is not None:
            raise DuplicateEmail()
        try:
            user_id = self._store.create_user(User(email=email, name=name, hashed_password=hash_password(password)))
        except IntegrityError as exc:
            # Concurrent registration with the same email won the race
            raise DuplicateEmail() from exc
        logger.info("User %s registered", user_id)
        return create_access_token(user_id)

    def login(self, email: str, password: str) -> str:
        """Return a bearer token for valid credentials.

        Unknown email and wrong password raise the same InvalidCredentials so
        the response cannot be used to probe which emails are registered.
        """
        user = authenticate_user(self._store, email or "", password or "")
        if user is None:
            logger.info("Failed login attempt")
            raise InvalidCredentials()
        return create_access_token(user.id)

    def current_user(self, token: str | None) -> User | None:
        """Resolve a token to its user. None means no token was presented."""
        result = resolve_current_user(self._store, token)
        if result.status is SessionStatus.INVALID:
            raise InvalidToken()
        return result.user

    def delete_account(self, user: User, password: str) -> None:
        """Delete user after re-checking their password."""
        stored = self._store.get_by_id(user.id)
        if stored is None or not verify_password(password or "", stored.hashed_password):
            raise InvalidCredentials("Incorrect password")
        # A failing hook leaves the account in place.
        for hook in self._on_account_deleted:
            hook(stored.id)
        self._store.delete_user(stored.id)
        logger.info("User %s deleted their account", stored.id)
