"""Unit tests for auth/session.py -- per-request current-user resolution."""

import pytest

from auth.models import SessionStatus
from auth.session import bearer_token_from_header, resolve_current_user
from auth.tokens import create_access_token


class TestBearerHeader:
    @pytest.mark.parametrize("value", [None, "", "Basic abc", "Bearer", "Bearer   ", "bearer abc"])
    def test_no_usable_token(self, value) -> None:
        assert bearer_token_from_header(value) is None

    def test_extracts_token(self) -> None:
        assert bearer_token_from_header("Bearer abc.def.ghi") == "abc.def.ghi"


class TestResolveCurrentUser:
    def test_absent_token_is_anonymous(self, user_store) -> None:
        result = resolve_current_user(user_store, None)
        assert result.status is SessionStatus.ANONYMOUS
        assert result.user is None
        assert not result.is_authenticated

    def test_empty_token_is_anonymous(self, user_store) -> None:
        assert resolve_current_user(user_store, "").status is SessionStatus.ANONYMOUS

    def test_bad_token_is_invalid(self, user_store) -> None:
        assert resolve_current_user(user_store, "garbage").status is SessionStatus.INVALID

    def test_expired_token_is_invalid(self, user_store, make_user) -> None:
        user = make_user("u1")
        token = create_access_token(user.id, expire_seconds=-5)
        assert resolve_current_user(user_store, token).status is SessionStatus.INVALID

    def test_valid_token_is_authenticated(self, user_store, make_user) -> None:
        user = make_user("u1")
        result = resolve_current_user(user_store, create_access_token(user.id))
        assert result.status is SessionStatus.AUTHENTICATED
        assert result.user.id == user.id
        assert result.user.email == "u1@example.com"

    def test_token_for_deleted_user_is_invalid(self, user_store, make_user) -> None:
        """Token issued for U1, U1 deleted afterwards -> Invalid, not Authenticated."""
        user = make_user("u1")
        token = create_access_token(user.id)
        assert user_store.delete_user(user.id)
        result = resolve_current_user(user_store, token)
        assert result.status is SessionStatus.INVALID
        assert result.user is None

    def test_token_does_not_carry_over_to_next_account(self, user_store, make_user) -> None:
        """Deleting the newest user must not hand its id (and tokens) to the next one."""
        gone = make_user("gone")
        token = create_access_token(gone.id)
        user_store.delete_user(gone.id)
        newcomer = make_user("newcomer")
        assert newcomer.id != gone.id
        assert resolve_current_user(user_store, token).status is SessionStatus.INVALID
