"""
auth/store.py -- User records in SQL, via SQLAlchemy Core.

UserStore is the only code that writes SQL for users; _row_to_user maps rows
back to auth.models.User. teams/store.py follows the same shape.

Emails are stored normalized (stripped, lower-cased) and carry a UNIQUE
constraint. AuthService checks get_by_email() first for a friendly
DuplicateEmail; the constraint settles the race when two registrations get
past that check at once.

All statements use bound parameters.

Layer rule: no imports from api/ or teams/. Deleting a user does not touch
teams; AuthService runs the cleanup hooks for that.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import User
from core.config import get_settings

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(100), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    # Ids are never reused, so a token issued for a deleted user stays invalid
    sqlite_autoincrement=True,
)


def _enable_wal(dbapi_conn, connection_record) -> None:
    # Per connection: SQLite pragmas do not carry over between pooled connections.
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def normalize_email(email: str) -> str:
    """Canonical form for storing and looking up an email."""
    return email.strip().lower()


class UserStore:
    """Create, look up and delete users.

        store = UserStore("sqlite:///users.db")
        user_id = store.create_user(User(email="a@b.io", name="A", hashed_password=hashed))
        store.get_by_email("A@B.io").id == user_id
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        is_sqlite = db_url.startswith("sqlite")
        self.engine: Engine = create_engine(db_url, connect_args={"check_same_thread": False} if is_sqlite else {})
        if is_sqlite:
            event.listen(self.engine, "connect", _enable_wal)
        _metadata.create_all(self.engine)

    def create_user(self, user: User) -> int:
        """Insert user and return the new id.

        A taken email surfaces as sqlalchemy.exc.IntegrityError.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=normalize_email(user.email),
                    name=user.name,
                    hashed_password=user.hashed_password,
                    created_at=datetime.now(timezone.utc).isoformat(),
                )
            )
        return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        return self._one(_users.c.email == normalize_email(email))

    def get_by_id(self, user_id: int) -> User | None:
        return self._one(_users.c.id == user_id)

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_users)).scalar() or 0

    def delete_user(self, user_id: int) -> bool:
        """Remove the user row. False if there was none."""
        with self.engine.begin() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    def ping(self) -> bool:
        """True if the database answers SELECT 1."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except Exception:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()

    def _one(self, condition) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(condition)).fetchone()
        return _row_to_user(row) if row is not None else None


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
    )
