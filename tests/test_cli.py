"""
tests/test_cli.py -- Tests for the main.py command-line client.

Covers:
  - register / whoami / logout round trip through the saved session file
  - wrong password on login reports the invalid-credentials message
  - team commands refuse to run without a session
  - create, add-member and list --member --json from two accounts
  - delete-account removes the session file and the owned teams
"""

from __future__ import annotations

import json

import pytest

import main as cli

PASSWORD = "password123"


@pytest.fixture
def run(tmp_path, monkeypatch, capsys):
    """Return run(*argv, session="a", password=PASSWORD) -> (exit_code, stdout, stderr)."""
    db_url = f"sqlite:///{tmp_path / 'cli.db'}"

    def _run(*argv: str, session: str = "a", password: str = PASSWORD):
        monkeypatch.setattr(cli.getpass, "getpass", lambda prompt="": password)
        code = cli.main(["--db", db_url, "--session-file", str(tmp_path / f"{session}.token"), *argv])
        out, err = capsys.readouterr()
        return code, out, err

    return _run


def test_no_command_prints_help(run):
    code, out, _ = run()
    assert code == 2
    assert "usage" in out.lower()


def test_register_whoami_logout(run, tmp_path):
    code, out, _ = run("register", "alice@example.com", "--name", "Alice")
    assert code == 0
    assert "alice@example.com" in out
    assert (tmp_path / "a.token").exists()

    code, out, _ = run("--json", "whoami")
    assert code == 0
    assert json.loads(out)["email"] == "alice@example.com"

    assert run("logout")[0] == 0
    assert not (tmp_path / "a.token").exists()
    code, out, _ = run("whoami")
    assert "Not logged in" in out


def test_login_wrong_password(run):
    run("register", "bob@example.com", "--name", "Bob")
    run("logout")
    code, _, err = run("login", "bob@example.com", password="not-the-password")
    assert code == 1
    assert "Invalid email or password" in err


def test_team_commands_need_session(run):
    code, _, err = run("teams", "list")
    assert code == 1
    assert "Not logged in" in err


def test_team_flow_between_two_accounts(run):
    run("register", "owner@example.com", "--name", "Owner", session="owner")
    run("register", "guest@example.com", "--name", "Guest", session="guest")

    code, out, _ = run("--json", "teams", "create", "Platform", "--description", "infra", session="owner")
    assert code == 0
    team_id = json.loads(out)["id"]

    assert run("teams", "add-member", str(team_id), "guest@example.com", session="owner")[0] == 0

    code, out, _ = run("--json", "teams", "list", "--member", session="guest")
    assert code == 0
    assert [t["name"] for t in json.loads(out)] == ["Platform"]

    # Guest is a plain member: roster changes are refused
    code, _, err = run("teams", "remove-member", str(team_id), "owner@example.com", session="guest")
    assert code == 1
    assert "owner or an admin" in err

    code, out, _ = run("teams", "remove-member", str(team_id), "ghost@example.com", session="owner")
    assert code == 0
    assert "User with this email does not exist" in out


def test_delete_account(run, tmp_path):
    run("register", "leaver@example.com", "--name", "Leaver")
    run("teams", "create", "Short-lived")

    code, _, err = run("delete-account", password="not-the-password")
    assert code == 1
    assert "Incorrect password" in err

    code, _, _ = run("delete-account")
    assert code == 0
    assert not (tmp_path / "a.token").exists()

    run("register", "leaver@example.com", "--name", "Again")
    code, out, _ = run("--json", "teams", "list")
    assert json.loads(out) == []
