"""
teams/service.py -- Ownership and membership rules for teams.

Every operation takes the authenticated principal explicitly. Rejecting
anonymous callers is the transport layer's job (auth/dependencies.py); by the
time a call reaches TeamService the caller is a real, existing User.

Rules enforced here:
  - (name, owner) is unique: DuplicateTeam on create and on rename.
  - Only the owner may update or delete a team: Forbidden otherwise.
  - Reading a single team requires being on its roster: Forbidden otherwise.
  - Roster mutation requires the owner or an admin: Forbidden otherwise.
  - A user is a member at most once: AlreadyMember.
  - The owner can never be removed from the member list: Forbidden.
  - Removing an email nobody registered is a soft success with a notice.

Concurrency:
  Roster and field mutations follow read -> check -> write. Two layers keep
  concurrent writers from losing each other's updates:
    1. A per-team threading.Lock serializes mutations inside this process.
    2. TeamStore writes carry the version that was read; a mismatch raises
       StaleTeamError and the mutation is re-run against a fresh read, up to
       _MAX_ATTEMPTS times, before surfacing Conflict. This covers writers in
       other processes sharing the same database.
  Every mutation returns a fresh read of the team, never the in-memory copy
  the checks ran against.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.store import UserStore
from core.errors import AlreadyMember, Conflict, DuplicateTeam, Forbidden, NotAMember, NotFound, UserNotFound, ValidationError
from teams.models import Team, TeamPatch
from teams.store import StaleTeamError, TeamStore

logger = logging.getLogger("teamroster.teams")

_MAX_ATTEMPTS = 3
_NAME_MAX_LENGTH = 100

USER_NOT_REGISTERED_NOTICE = "User with this email does not exist"


class TeamLocks:
    """Registry of one threading.Lock per team id.

    An entry exists only while some caller holds or waits on its lock, so ids
    of deleted or never-existing teams do not accumulate.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # team id -> (lock, number of callers holding or waiting on it)
        self._locks: dict[int, tuple[threading.Lock, int]] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, team_id: int) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(team_id, (None, 0))
            lock = lock or threading.Lock()
            self._locks[team_id] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                users = self._locks[team_id][1] - 1
                if users:
                    self._locks[team_id] = (lock, users)
                else:
                    del self._locks[team_id]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Team name is required")
    if len(cleaned) > _NAME_MAX_LENGTH:
        raise ValidationError(f"Team name must be at most {_NAME_MAX_LENGTH} characters")
    return cleaned


def is_owner(team: Team, user: User) -> bool:
    return team.owner_id == user.id


def can_manage_roster(team: Team, user: User) -> bool:
    return is_owner(team, user) or user.id in team.admin_ids


def can_view(team: Team, user: User) -> bool:
    return can_manage_roster(team, user) or user.id in team.member_ids


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class TeamService:
    """Team authorization engine over TeamStore and UserStore."""

    def __init__(self, teams: TeamStore, users: UserStore, locks: TeamLocks | None = None) -> None:
        self._teams = teams
        self._users = users
        self._locks = locks or TeamLocks()

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def create(self, owner: User, name: str, description: str = "") -> Team:
        """Create a team owned by owner. Owner becomes its first admin and member."""
        name = _clean_name(name)
        if self._teams.find_by_name(owner.id, name) is not None:
            raise DuplicateTeam()
        try:
            team_id = self._teams.create_team(Team(name=name, description=description or "", owner_id=owner.id))
        except IntegrityError as exc:
            # Concurrent create with the same name won the race
            raise DuplicateTeam() from exc
        logger.info("Team %s created by user %s", team_id, owner.id)
        return self._require_team(team_id)

    def fetch_all(self, owner: User) -> list[Team]:
        """Teams the caller owns. Teams they merely belong to are not included."""
        return self._teams.list_by_owner(owner.id)

    def fetch_memberships(self, user: User) -> list[Team]:
        """Teams whose member list contains the caller, owned or not."""
        return self._teams.list_by_member(user.id)

    def fetch_one(self, team_id: int, user: User) -> Team:
        team = self._require_team(team_id)
        if not can_view(team, user):
            raise Forbidden("Not authorized to view this team")
        return team

    # ------------------------------------------------------------------
    # Owner-only mutation
    # ------------------------------------------------------------------

    def update(self, team_id: int, patch: TeamPatch, user: User) -> Team:
        """Apply a name/description patch. Owner only."""
        fields: dict = {}
        if patch.name is not None:
            fields["name"] = _clean_name(patch.name)
        if patch.description is not None:
            fields["description"] = patch.description

        def apply(team: Team) -> None:
            if not is_owner(team, user):
                logger.warning("User %s denied update of team %s", user.id, team.id)
                raise Forbidden("Not authorized to update this team")
            if not fields:
                return
            new_name = fields.get("name")
            if new_name is not None and new_name != team.name:
                clash = self._teams.find_by_name(team.owner_id, new_name)
                if clash is not None and clash.id != team.id:
                    raise DuplicateTeam()
            try:
                self._teams.update_team(team.id, team.version, **fields)
            except IntegrityError as exc:
                raise DuplicateTeam() from exc

        return self._mutate(team_id, apply)

    def delete(self, team_id: int, user: User) -> None:
        """Delete a team permanently. Owner only."""
        with self._locks.hold(team_id):
            team = self._require_team(team_id)
            if not is_owner(team, user):
                logger.warning("User %s denied delete of team %s", user.id, team_id)
                raise Forbidden("Not authorized to delete this team")
            self._teams.delete_team(team_id)
        logger.info("Team %s deleted by owner %s", team_id, user.id)

    # ------------------------------------------------------------------
    # Roster mutation
    # ------------------------------------------------------------------

    def add_member(self, team_id: int, email: str, actor: User) -> Team:
        """Add the user registered under email. Owner or admin only."""

        def apply(team: Team) -> None:
            self._require_roster_rights(team, actor)
            user = self._users.get_by_email(email)
            if user is None:
                raise UserNotFound()
            if user.id in team.member_ids:
                raise AlreadyMember()
            try:
                self._teams.add_member(team.id, user.id, team.version)
            except IntegrityError as exc:
                raise AlreadyMember() from exc
            logger.info("User %s added to team %s by %s", user.id, team.id, actor.id)

        return self._mutate(team_id, apply)

    def remove_member(self, team_id: int, email: str, actor: User) -> tuple[Team, str | None]:
        """Remove the user registered under email. Owner or admin only.

        Returns (team, notice). notice is set when email belongs to nobody:
        there is nothing to remove, which is not an error.
        """
        notice: list[str] = []

        def apply(team: Team) -> None:
            self._require_roster_rights(team, actor)
            user = self._users.get_by_email(email)
            if user is None:
                notice.append(USER_NOT_REGISTERED_NOTICE)
                return
            if user.id not in team.member_ids:
                raise NotAMember()
            if is_owner(team, user):
                raise Forbidden("The team owner cannot be removed")
            self._teams.remove_member(team.id, user.id, team.version)
            logger.info("User %s removed from team %s by %s", user.id, team.id, actor.id)

        team = self._mutate(team_id, apply)
        return team, (notice[0] if notice else None)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _require_team(self, team_id: int) -> Team:
        team = self._teams.get_team(team_id)
        if team is None:
            raise NotFound()
        return team

    @staticmethod
    def _require_roster_rights(team: Team, actor: User) -> None:
        if not can_manage_roster(team, actor):
            logger.warning("User %s denied roster change on team %s", actor.id, team.id)
            raise Forbidden("Only the team owner or an admin can change its members")

    def _mutate(self, team_id: int, apply: Callable[[Team], None]) -> Team:
        """Run read -> apply -> re-read under the team lock, retrying stale writes."""
        with self._locks.hold(team_id):
            for attempt in range(1, _MAX_ATTEMPTS + 1):
                team = self._require_team(team_id)
                try:
                    apply(team)
                except StaleTeamError:
                    logger.info("Team %s changed concurrently (attempt %d/%d)", team_id, attempt, _MAX_ATTEMPTS)
                    continue
                return self._require_team(team_id)
        raise Conflict()
