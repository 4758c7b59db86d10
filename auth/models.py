"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in teams/models.py -- dataclasses own domain shape; stores, services and
routes do the work.

Layer rule: no imports from api/ or teams/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass
class User:
    """Represents a registered identity in TeamRoster.

    email is stored stripped and lower-cased (see auth/store.normalize_email)
    so uniqueness is case-insensitive. hashed_password is a bcrypt hash; the
    plaintext never leaves the auth service.
    """

    email: str
    name: str
    hashed_password: str
    id: int | None = None
    created_at: str | None = None


# ---------------------------------------------------------------------------
# Session resolution
# ---------------------------------------------------------------------------


class SessionStatus(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    INVALID = "invalid"


@dataclass(frozen=True)
class SessionResult:
    """Outcome of resolving one request's bearer token.

    user is set only when status is AUTHENTICATED.
    """

    status: SessionStatus
    user: User | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.status is SessionStatus.AUTHENTICATED


# ---------------------------------------------------------------------------
# Workflow state and events
# ---------------------------------------------------------------------------


class WorkflowStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"
    ERROR = "error"


class AuthEventKind(str, Enum):
    REGISTERED = "registered"
    LOGGED_IN = "logged-in"
    LOGGED_OUT = "logged-out"
    AUTHENTICATED_FROM_TOKEN = "authenticated-from-token"
    ACCOUNT_DELETED = "account-deleted"
    AUTH_ERROR = "auth-error"


@dataclass(frozen=True)
class AuthEvent:
    """A transient session lifecycle event. Never persisted.

    message is only set for AUTH_ERROR; user is set for the events that
    leave the session authenticated.
    """

    kind: AuthEventKind
    user: User | None = None
    message: str | None = None
    ts_utc: datetime | None = None


@dataclass
class SessionState:
    """Client-visible state of one session, owned by one AuthWorkflow.

    Passed explicitly instead of living in an app-wide store so two sessions
    in the same process never see each other's state.
    """

    status: WorkflowStatus = WorkflowStatus.IDLE
    user: User | None = None
    is_loading: bool = False
    error: str | None = None
    events: list[AuthEvent] = field(default_factory=list)

    @property
    def is_authenticated(self) -> bool:
        return self.status is WorkflowStatus.AUTHENTICATED
