"""
teams/store.py -- SQLAlchemy Core persistence layer for teams and rosters.

Pattern: Repository + Data Mapper (same as auth/store.py). TeamStore is the
repository; _row_to_team is the mapper. The service layer never touches SQL.

Schema:
  teams        -- one row per team, UNIQUE(owner_id, name), version counter
  team_roster  -- one row per (team, user, role); role is "admin" or "member".
                  UNIQUE(team_id, user_id, role) makes duplicate membership
                  impossible even if two writers race past the service check.
                  The autoincrement id preserves insertion order.

Optimistic concurrency:
  Every roster or field mutation bumps teams.version with
      UPDATE teams SET version = version + 1 WHERE id = :id AND version = :seen
  inside the same transaction as the roster write. If another writer got
  there first the UPDATE matches zero rows, the transaction rolls back and
  StaleTeamError is raised. teams/service.py re-reads and retries.

Security: all queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, UniqueConstraint, create_engine, event, select
from sqlalchemy.engine import Connection, Engine

from core.config import get_settings
from teams.models import Team

ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_teams = Table(
    "teams",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("description", Text, nullable=False, server_default=""),
    Column("owner_id", Integer, nullable=False),
    Column("version", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("owner_id", "name", name="uq_team_owner_name"),
    sqlite_autoincrement=True,
)

_roster = Table(
    "team_roster",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("team_id", Integer, nullable=False, index=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("role", String(10), nullable=False),  # "admin" | "member"
    UniqueConstraint("team_id", "user_id", "role", name="uq_roster_entry"),
)


class StaleTeamError(Exception):
    """The team's version changed between read and write."""

    def __init__(self, team_id: int, expected_version: int) -> None:
        super().__init__(f"team {team_id} is no longer at version {expected_version}")
        self.team_id = team_id
        self.expected_version = expected_version


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block on a writer."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _bump_version(conn: Connection, team_id: int, expected_version: int, **fields) -> None:
    """Advance the version counter, or raise StaleTeamError if someone else did."""
    result = conn.execute(
        _teams.update()
        .where((_teams.c.id == team_id) & (_teams.c.version == expected_version))
        .values(version=_teams.c.version + 1, updated_at=_now_iso(), **fields)
    )
    if result.rowcount == 0:
        raise StaleTeamError(team_id, expected_version)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TeamStore:
    """Repository for Team entities and their rosters.

    Usage:
        store = TeamStore()
        team_id = store.create_team(Team(name="Alpha", owner_id=1))
        team = store.get_team(team_id)
        store.add_member(team_id, user_id=3, expected_version=team.version)
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Team queries
    # ------------------------------------------------------------------

    def create_team(self, team: Team) -> int:
        """Insert a team with its owner as first admin and first member.

        Raises sqlalchemy.exc.IntegrityError if the owner already has a team
        with this name. The service translates that into DuplicateTeam.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _teams.insert().values(
                    name=team.name,
                    description=team.description or "",
                    owner_id=team.owner_id,
                    version=1,
                    created_at=now,
                    updated_at=now,
                )
            )
            team_id = result.inserted_primary_key[0]
            conn.execute(
                _roster.insert(),
                [
                    {"team_id": team_id, "user_id": team.owner_id, "role": ROLE_ADMIN},
                    {"team_id": team_id, "user_id": team.owner_id, "role": ROLE_MEMBER},
                ],
            )
        return team_id

    def get_team(self, team_id: int) -> Team | None:
        """Return the team with its roster, or None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_teams.select().where(_teams.c.id == team_id)).fetchone()
            if row is None:
                return None
            rosters = self._load_rosters(conn, [team_id])
        return _row_to_team(row, rosters.get(team_id, ([], [])))

    def find_by_name(self, owner_id: int, name: str) -> Team | None:
        """Return the owner's team with exactly this name, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _teams.select().where((_teams.c.owner_id == owner_id) & (_teams.c.name == name))
            ).fetchone()
            if row is None:
                return None
            rosters = self._load_rosters(conn, [row.id])
        return _row_to_team(row, rosters.get(row.id, ([], [])))

    def list_by_owner(self, owner_id: int) -> list[Team]:
        """Return every team owned by owner_id, oldest first."""
        query = _teams.select().where(_teams.c.owner_id == owner_id).order_by(_teams.c.id)
        return self._list(query)

    def list_by_member(self, user_id: int) -> list[Team]:
        """Return every team whose member list contains user_id, oldest first."""
        member_of = select(_roster.c.team_id).where((_roster.c.user_id == user_id) & (_roster.c.role == ROLE_MEMBER))
        query = _teams.select().where(_teams.c.id.in_(member_of)).order_by(_teams.c.id)
        return self._list(query)

    def update_team(self, team_id: int, expected_version: int, **fields) -> None:
        """Update name and/or description.

        Accepted fields: name, description. Raises StaleTeamError if the team
        is no longer at expected_version (or no longer exists), and
        IntegrityError if the new name collides with another of the owner's teams.
        """
        unknown = set(fields) - {"name", "description"}
        if unknown:
            raise ValueError(f"Unknown team fields: {unknown!r}")
        with self.engine.begin() as conn:
            _bump_version(conn, team_id, expected_version, **fields)

    def delete_team(self, team_id: int) -> bool:
        """Delete a team and its roster. Returns True if a team was deleted."""
        with self.engine.begin() as conn:
            conn.execute(_roster.delete().where(_roster.c.team_id == team_id))
            result = conn.execute(_teams.delete().where(_teams.c.id == team_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Roster mutation
    # ------------------------------------------------------------------

    def add_member(self, team_id: int, user_id: int, expected_version: int) -> None:
        """Append user_id to the member list.

        Raises StaleTeamError on a concurrent write and IntegrityError if
        user_id is already a member.
        """
        with self.engine.begin() as conn:
            _bump_version(conn, team_id, expected_version)
            conn.execute(_roster.insert().values(team_id=team_id, user_id=user_id, role=ROLE_MEMBER))

    def remove_member(self, team_id: int, user_id: int, expected_version: int) -> None:
        """Remove user_id from the team, including any admin entry.

        A non-admin who is no longer a member must not keep admin rights, so
        both roster rows go together.
        """
        with self.engine.begin() as conn:
            _bump_version(conn, team_id, expected_version)
            conn.execute(_roster.delete().where((_roster.c.team_id == team_id) & (_roster.c.user_id == user_id)))

    def purge_user(self, user_id: int) -> int:
        """Remove every trace of a deleted user.

        Teams the user owns are deleted outright (a team cannot outlive its
        owner). Roster rows in other teams are removed and those teams'
        versions bumped so in-flight writers see the change.

        Returns the number of owned teams deleted.
        """
        with self.engine.begin() as conn:
            owned = [r.id for r in conn.execute(select(_teams.c.id).where(_teams.c.owner_id == user_id))]
            if owned:
                conn.execute(_roster.delete().where(_roster.c.team_id.in_(owned)))
                conn.execute(_teams.delete().where(_teams.c.id.in_(owned)))
            joined = [
                r.team_id for r in conn.execute(select(_roster.c.team_id).where(_roster.c.user_id == user_id).distinct())
            ]
            if joined:
                conn.execute(_roster.delete().where(_roster.c.user_id == user_id))
                conn.execute(
                    _teams.update()
                    .where(_teams.c.id.in_(joined))
                    .values(version=_teams.c.version + 1, updated_at=_now_iso())
                )
        return len(owned)

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
            return True
        except Exception:
            return False

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _list(self, query) -> list[Team]:
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
            rosters = self._load_rosters(conn, [r.id for r in rows])
        return [_row_to_team(r, rosters.get(r.id, ([], []))) for r in rows]

    @staticmethod
    def _load_rosters(conn: Connection, team_ids: list[int]) -> dict[int, tuple[list[int], list[int]]]:
        """Return {team_id: (admin_ids, member_ids)} in one query (no N+1)."""
        if not team_ids:
            return {}
        rows = conn.execute(_roster.select().where(_roster.c.team_id.in_(team_ids)).order_by(_roster.c.id)).fetchall()
        rosters: dict[int, tuple[list[int], list[int]]] = {tid: ([], []) for tid in team_ids}
        for row in rows:
            admins, members = rosters[row.team_id]
            target = admins if row.role == ROLE_ADMIN else members
            if row.user_id not in target:
                target.append(row.user_id)
        return rosters


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_team(row, roster: tuple[list[int], list[int]]) -> Team:
    admin_ids, member_ids = roster
    return Team(
        id=row.id,
        name=row.name,
        description=row.description or "",
        owner_id=row.owner_id,
        admin_ids=list(admin_ids),
        member_ids=list(member_ids),
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
