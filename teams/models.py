"""
teams/models.py -- Domain dataclasses for teams.

Pure data containers with zero logic. The ownership and roster rules live in
teams/service.py; persistence lives in teams/store.py.

Roster lists hold user ids, not User objects, so membership is always
compared by identifier. Both lists keep insertion order and never contain
the same id twice.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Team:
    """A named group of users.

    owner_id is fixed at creation. The owner is always present in both
    admin_ids and member_ids. version increases by one on every write and
    backs the optimistic concurrency check in TeamStore.

    id is None before the record is written to the database.
    """

    name: str
    owner_id: int
    description: str = ""
    id: int | None = None
    admin_ids: list[int] = field(default_factory=list)
    member_ids: list[int] = field(default_factory=list)
    version: int = 1
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass
class TeamPatch:
    """Fields an owner may change. None means "leave as is"."""

    name: str | None = None
    description: str | None = None

    def is_empty(self) -> bool:
        return self.name is None and self.description is None
