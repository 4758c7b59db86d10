"""
auth/workflow.py -- Session lifecycle state machine for one client session.

AuthWorkflow drives a single SessionState through

    IDLE -> LOADING -> AUTHENTICATED | ANONYMOUS | ERROR

and emits AuthEvents to subscribers so a UI (or a test) can react to
registered / logged-in / logged-out / authenticated-from-token /
account-deleted / auth-error without polling.

State is explicit: each workflow owns its own SessionState and TokenStore.
Nothing here is module-global, so two sessions in one process are isolated.

Loading flag:
  Every transition sets state.is_loading = True before touching the backend
  and resets it in a finally block, so it is False again on every exit path
  including unexpected exceptions. Callers can rely on it to disable
  duplicate submissions.

Error surfacing:
  Backend failures are reduced to one human-readable message: the first
  structured error carried by a TeamRosterError, otherwise the generic
  fallback. Raw storage errors (SQLAlchemyError) are logged, never shown.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError

from auth.models import AuthEvent, AuthEventKind, SessionState, User, WorkflowStatus
from auth.service import AuthService
from core.errors import TeamRosterError, Unauthorized

logger = logging.getLogger("teamroster.auth")

GENERIC_ERROR_MESSAGE = "Something went wrong!"

Listener = Callable[[AuthEvent], None]


# ---------------------------------------------------------------------------
# Token persistence
# ---------------------------------------------------------------------------


class TokenStore(Protocol):
    """Where a session keeps its bearer token between operations."""

    def load(self) -> str | None: ...

    def save(self, token: str) -> None: ...

    def clear(self) -> None: ...


class MemoryTokenStore:
    def __init__(self, token: str | None = None) -> None:
        self._token = token

    def load(self) -> str | None:
        return self._token

    def save(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class FileTokenStore:
    """Keeps the token in a file so a session survives process restarts.

    The file is created 0600 and never exists with wider permissions.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> str | None:
        try:
            token = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        return token or None

    def save(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            # an existing file keeps its old mode through O_CREAT
            self.path.chmod(0o600)
            fh.write(token)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def error_message(exc: BaseException) -> str:
    """Return the first structured error message of a failure, else the fallback."""
    if isinstance(exc, TeamRosterError) and exc.errors:
        return exc.errors[0]
    return GENERIC_ERROR_MESSAGE


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


class AuthWorkflow:
    """Register / login / load_user / logout / delete_account for one session."""

    def __init__(
        self,
        service: AuthService,
        tokens: TokenStore | None = None,
        state: SessionState | None = None,
    ) -> None:
        self.service = service
        self.tokens = tokens if tokens is not None else MemoryTokenStore()
        self.state = state if state is not None else SessionState()
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, name: str) -> SessionState:
        with self._loading():
            try:
                token = self.service.register(email, password, name)
                self.tokens.save(token)
                user = self._resolve_saved_token()
            except (TeamRosterError, SQLAlchemyError) as exc:
                self._fail(exc)
            else:
                self._authenticate(AuthEventKind.REGISTERED, user)
        return self.state

    def login(self, email: str, password: str) -> SessionState:
        with self._loading():
            try:
                token = self.service.login(email, password)
                self.tokens.save(token)
                user = self._resolve_saved_token()
            except (TeamRosterError, SQLAlchemyError) as exc:
                self._fail(exc)
            else:
                self._authenticate(AuthEventKind.LOGGED_IN, user)
        return self.state

    def load_user(self) -> SessionState:
        """Restore a session from a previously stored token.

        No token, a bad token, or a token whose user is gone all end in
        ANONYMOUS without an auth-error event: no session is not a failure.
        """
        with self._loading():
            token = self.tokens.load()
            try:
                user = self.service.current_user(token)
            except (TeamRosterError, SQLAlchemyError) as exc:
                logger.info("Stored token rejected: %s", exc)
                self.tokens.clear()
                user = None
            if user is None:
                self._become_anonymous()
            else:
                self._authenticate(AuthEventKind.AUTHENTICATED_FROM_TOKEN, user)
        return self.state

    def logout(self) -> SessionState:
        """Drop the local token. Stateless tokens need no server call."""
        with self._loading():
            self.tokens.clear()
            self._become_anonymous()
            self._emit(AuthEventKind.LOGGED_OUT)
        return self.state

    def delete_account(self, password: str) -> SessionState:
        with self._loading():
            try:
                user = self.service.current_user(self.tokens.load())
                if user is None:
                    raise Unauthorized()
                self.service.delete_account(user, password)
            except (TeamRosterError, SQLAlchemyError) as exc:
                self._fail(exc)
            else:
                self.tokens.clear()
                self._become_anonymous()
                self._emit(AuthEventKind.ACCOUNT_DELETED)
        return self.state

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @contextmanager
    def _loading(self) -> Iterator[None]:
        self.state.is_loading = True
        self.state.status = WorkflowStatus.LOADING
        self.state.error = None
        try:
            yield
        finally:
            self.state.is_loading = False
            if self.state.status is WorkflowStatus.LOADING:
                # An unexpected exception escaped mid-transition
                self.state.status = WorkflowStatus.ERROR
                self.state.error = GENERIC_ERROR_MESSAGE

    def _resolve_saved_token(self) -> User:
        user = self.service.current_user(self.tokens.load())
        if user is None:
            raise Unauthorized()
        return user

    def _authenticate(self, kind: AuthEventKind, user: User) -> None:
        self.state.status = WorkflowStatus.AUTHENTICATED
        self.state.user = user
        self.state.error = None
        self._emit(kind, user=user)

    def _become_anonymous(self) -> None:
        self.state.status = WorkflowStatus.ANONYMOUS
        self.state.user = None

    def _fail(self, exc: BaseException) -> None:
        if isinstance(exc, SQLAlchemyError):
            logger.exception("Storage error during auth operation")
        message = error_message(exc)
        self.state.status = WorkflowStatus.ERROR
        self.state.error = message
        self._emit(AuthEventKind.AUTH_ERROR, message=message)

    def _emit(self, kind: AuthEventKind, user: User | None = None, message: str | None = None) -> None:
        event = AuthEvent(kind=kind, user=user, message=message, ts_utc=datetime.now(timezone.utc))
        self.state.events.append(event)
        for listener in list(self._listeners):
            listener(event)
