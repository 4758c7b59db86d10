"""
core/errors.py -- Domain error taxonomy shared by auth/ and teams/.

Services raise these; they never raise HTTPException. api/main.py registers a
single exception handler for TeamRosterError that renders the response
envelope, so the HTTP status and machine-readable code live next to each
error class rather than being repeated in every route.

InvalidCredentials deliberately carries one fixed message for both "unknown
email" and "wrong password" so responses cannot be used to enumerate accounts.

Layer rule: core/ is the kernel -- no imports from api/, auth/ or teams/.
"""

from __future__ import annotations


class TeamRosterError(Exception):
    """Base class for every error a service surfaces to its caller."""

    code: str = "error"
    status_code: int = 400
    default_message: str = "Something went wrong!"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def errors(self) -> list[str]:
        """Structured error messages, first one is shown to the user."""
        return [self.message]


class ValidationError(TeamRosterError):
    code = "validation_error"
    status_code = 422
    default_message = "Request validation failed."


class DuplicateEmail(TeamRosterError):
    code = "duplicate_email"
    status_code = 409
    default_message = "A user with this email already exists"


class DuplicateTeam(TeamRosterError):
    code = "duplicate_team"
    status_code = 409
    default_message = "You already have a team with this name"


class InvalidCredentials(TeamRosterError):
    code = "invalid_credentials"
    status_code = 401
    default_message = "Invalid email or password"


class InvalidToken(TeamRosterError):
    code = "invalid_token"
    status_code = 401
    default_message = "Invalid or expired token"


class Unauthorized(TeamRosterError):
    code = "unauthorized"
    status_code = 401
    default_message = "Authentication required."


class NotFound(TeamRosterError):
    code = "not_found"
    status_code = 404
    default_message = "Team not found"


class Forbidden(TeamRosterError):
    code = "forbidden"
    status_code = 403
    default_message = "Not authorized to perform this action"


class RegistrationClosed(Forbidden):
    code = "registration_closed"
    default_message = "Self-registration is disabled"


class UserNotFound(TeamRosterError):
    code = "user_not_found"
    status_code = 404
    default_message = "User with this email does not exist"


class AlreadyMember(TeamRosterError):
    code = "already_member"
    status_code = 409
    default_message = "User already in the team"


class NotAMember(TeamRosterError):
    code = "not_a_member"
    status_code = 404
    default_message = "User not present in the team"


class Conflict(TeamRosterError):
    """Raised when a team kept changing underneath a mutation after all retries."""

    code = "conflict"
    status_code = 409
    default_message = "The team was modified concurrently, please retry"
