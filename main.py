#!/usr/bin/env python3
"""
TeamRoster -- command-line client for accounts and teams.
Talks to the same database as the API, no server required.

Usage:
  python main.py register alice@example.com --name Alice
  python main.py login alice@example.com
  python main.py whoami
  python main.py logout
  python main.py delete-account
  python main.py teams list
  python main.py teams list --member
  python main.py teams create "Platform" --description "Infra people"
  python main.py teams show 3
  python main.py teams update 3 --name "Platform Core"
  python main.py teams delete 3
  python main.py teams add-member 3 bob@example.com
  python main.py teams remove-member 3 bob@example.com

Passwords are always prompted for, never taken from the command line.

Environment variables:
  SECRET_KEY     Token signing key. Must be stable between runs, otherwise the
                 saved session is discarded on the next command.
  DATABASE_URL   SQLAlchemy URL of the shared database.
  SESSION_FILE   Where the bearer token is kept (default ~/.teamroster/token).
"""

import argparse
import getpass
import json
import logging
import sys
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from api.models import TeamResponse, UserResponse
from auth.models import User, WorkflowStatus
from auth.service import AuthService
from auth.store import UserStore
from auth.workflow import AuthWorkflow, FileTokenStore, error_message
from core.config import get_settings
from core.errors import TeamRosterError
from teams.models import Team, TeamPatch
from teams.service import TeamService
from teams.store import TeamStore

logger = logging.getLogger("teamroster.cli")


class Client:
    """Stores, services and the saved session for one CLI invocation."""

    def __init__(self, db_url: Optional[str] = None, session_file: Optional[str] = None) -> None:
        settings = get_settings()
        self.users = UserStore(db_url or settings.database_url)
        self.teams = TeamStore(db_url or settings.database_url)
        auth = AuthService(self.users, on_account_deleted=[self.teams.purge_user])
        self.workflow = AuthWorkflow(auth, tokens=FileTokenStore(session_file or settings.session_file))
        self.team_service = TeamService(self.teams, self.users)

    def close(self) -> None:
        self.teams.close()
        self.users.close()


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def _print_user(user: User, as_json: bool) -> None:
    if as_json:
        print(json.dumps(UserResponse.from_user(user).model_dump(), indent=2))
        return
    print(f"  {user.name} <{user.email}> (id {user.id})")


def _print_teams(teams: list[Team], as_json: bool) -> None:
    if as_json:
        print(json.dumps([TeamResponse.from_team(t).model_dump() for t in teams], indent=2))
        return
    if not teams:
        print("  No teams.")
        return
    for team in teams:
        print(f"  [{team.id}] {team.name} -- {len(team.member_ids)} member(s), owner {team.owner_id}")
        if team.description:
            print(f"        {team.description}")


def _print_team(team: Team, as_json: bool) -> None:
    if as_json:
        print(json.dumps(TeamResponse.from_team(team).model_dump(), indent=2))
        return
    print(f"  [{team.id}] {team.name} (version {team.version})")
    if team.description:
        print(f"  {team.description}")
    print(f"  Owner:   {team.owner_id}")
    print(f"  Admins:  {', '.join(str(i) for i in team.admin_ids)}")
    print(f"  Members: {', '.join(str(i) for i in team.member_ids)}")


def _fail(message: str) -> int:
    print(f"  [!] {message}", file=sys.stderr)
    return 1


# ---------------------------------------------------------------------------
# Account commands
# ---------------------------------------------------------------------------


def cmd_register(client: Client, args: argparse.Namespace) -> int:
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Repeat password: "):
        return _fail("Passwords do not match.")
    state = client.workflow.register(args.email, password, args.name)
    if state.status is not WorkflowStatus.AUTHENTICATED:
        return _fail(state.error or "Registration failed.")
    print("  Registered and logged in.")
    _print_user(state.user, args.json)
    return 0


def cmd_login(client: Client, args: argparse.Namespace) -> int:
    state = client.workflow.login(args.email, getpass.getpass("Password: "))
    if state.status is not WorkflowStatus.AUTHENTICATED:
        return _fail(state.error or "Login failed.")
    print("  Logged in.")
    _print_user(state.user, args.json)
    return 0


def cmd_whoami(client: Client, args: argparse.Namespace) -> int:
    state = client.workflow.load_user()
    if state.user is None:
        if args.json:
            print("null")
        else:
            print("  Not logged in.")
        return 0
    _print_user(state.user, args.json)
    return 0


def cmd_logout(client: Client, args: argparse.Namespace) -> int:
    client.workflow.logout()
    print("  Logged out.")
    return 0


def cmd_delete_account(client: Client, args: argparse.Namespace) -> int:
    if client.workflow.load_user().user is None:
        return _fail("Not logged in.")
    state = client.workflow.delete_account(getpass.getpass("Password: "))
    if state.status is WorkflowStatus.ERROR:
        return _fail(state.error or "Account deletion failed.")
    print("  Account deleted. Teams you owned were deleted with it.")
    return 0


# ---------------------------------------------------------------------------
# Team commands
# ---------------------------------------------------------------------------


def _require_user(client: Client) -> Optional[User]:
    return client.workflow.load_user().user


def cmd_teams_list(client: Client, args: argparse.Namespace, user: User) -> int:
    if args.member:
        teams = client.team_service.fetch_memberships(user)
    else:
        teams = client.team_service.fetch_all(user)
    _print_teams(teams, args.json)
    return 0


def cmd_teams_create(client: Client, args: argparse.Namespace, user: User) -> int:
    team = client.team_service.create(user, args.name, args.description)
    _print_team(team, args.json)
    return 0


def cmd_teams_show(client: Client, args: argparse.Namespace, user: User) -> int:
    _print_team(client.team_service.fetch_one(args.team_id, user), args.json)
    return 0


def cmd_teams_update(client: Client, args: argparse.Namespace, user: User) -> int:
    patch = TeamPatch(name=args.name, description=args.description)
    if patch.is_empty():
        return _fail("Nothing to update. Pass --name and/or --description.")
    _print_team(client.team_service.update(args.team_id, patch, user), args.json)
    return 0


def cmd_teams_delete(client: Client, args: argparse.Namespace, user: User) -> int:
    client.team_service.delete(args.team_id, user)
    print(f"  Team {args.team_id} deleted.")
    return 0


def cmd_teams_add_member(client: Client, args: argparse.Namespace, user: User) -> int:
    _print_team(client.team_service.add_member(args.team_id, args.email, user), args.json)
    return 0


def cmd_teams_remove_member(client: Client, args: argparse.Namespace, user: User) -> int:
    team, notice = client.team_service.remove_member(args.team_id, args.email, user)
    if notice:
        print(f"  {notice}")
    _print_team(team, args.json)
    return 0


TeamCommand = Callable[[Client, argparse.Namespace, User], int]


def _team_command(handler: TeamCommand) -> Callable[[Client, argparse.Namespace], int]:
    """Resolve the saved session first; team commands never run anonymously."""

    def run(client: Client, args: argparse.Namespace) -> int:
        user = _require_user(client)
        if user is None:
            return _fail("Not logged in. Run 'login' first.")
        return handler(client, args, user)

    return run


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="teamroster",
        description="Manage your TeamRoster account and teams.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py register alice@example.com --name Alice
  python main.py login alice@example.com
  python main.py teams create Platform
  python main.py teams add-member 1 bob@example.com
  python main.py teams list --member --json
        """,
    )
    parser.add_argument("--json", action="store_true", help="Output structured JSON")
    parser.add_argument("--db", metavar="URL", default=None, help="SQLAlchemy database URL (default: DATABASE_URL)")
    parser.add_argument("--session-file", metavar="PATH", default=None, help="Where to keep the bearer token")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log service activity to stderr")

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("register", help="Create an account and log in")
    p.add_argument("email")
    p.add_argument("--name", required=True, help="Display name")
    p.set_defaults(func=cmd_register)

    p = sub.add_parser("login", help="Log in with email and password")
    p.add_argument("email")
    p.set_defaults(func=cmd_login)

    sub.add_parser("whoami", help="Show the logged-in user").set_defaults(func=cmd_whoami)
    sub.add_parser("logout", help="Forget the saved session").set_defaults(func=cmd_logout)
    sub.add_parser("delete-account", help="Delete your account and the teams you own").set_defaults(
        func=cmd_delete_account
    )

    teams = sub.add_parser("teams", help="Team commands").add_subparsers(dest="team_command", metavar="ACTION")

    p = teams.add_parser("list", help="Teams you own")
    p.add_argument("--member", action="store_true", help="Every team you belong to, owned or not")
    p.set_defaults(func=_team_command(cmd_teams_list))

    p = teams.add_parser("create", help="Create a team you own")
    p.add_argument("name")
    p.add_argument("--description", default="")
    p.set_defaults(func=_team_command(cmd_teams_create))

    p = teams.add_parser("show", help="Show one team")
    p.add_argument("team_id", type=int)
    p.set_defaults(func=_team_command(cmd_teams_show))

    p = teams.add_parser("update", help="Rename or re-describe a team (owner only)")
    p.add_argument("team_id", type=int)
    p.add_argument("--name", default=None)
    p.add_argument("--description", default=None)
    p.set_defaults(func=_team_command(cmd_teams_update))

    p = teams.add_parser("delete", help="Delete a team (owner only)")
    p.add_argument("team_id", type=int)
    p.set_defaults(func=_team_command(cmd_teams_delete))

    p = teams.add_parser("add-member", help="Add a registered user by email (owner or admin)")
    p.add_argument("team_id", type=int)
    p.add_argument("email")
    p.set_defaults(func=_team_command(cmd_teams_add_member))

    p = teams.add_parser("remove-member", help="Remove a member by email (owner or admin)")
    p.add_argument("team_id", type=int)
    p.add_argument("email")
    p.set_defaults(func=_team_command(cmd_teams_remove_member))

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 2

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    client = Client(db_url=args.db, session_file=args.session_file)
    try:
        return args.func(client, args)
    except (TeamRosterError, SQLAlchemyError) as exc:
        if isinstance(exc, SQLAlchemyError):
            logger.exception("Storage error")
        return _fail(error_message(exc))
    finally:
        client.close()


if __name__ == "__main__":
    sys.exit(main())
