"""Unit tests for auth/workflow.py -- the session lifecycle state machine.

Covers:
- register / login / load_user / logout / delete_account transitions and events
- loading flag is True during the backend call and False on every exit path
- first structured error message is surfaced; storage errors get the fallback
- a stale stored token is discarded without an auth-error event
- FileTokenStore persists a session across workflow instances, in a 0600 file
"""

import os
import stat

import pytest
from sqlalchemy.exc import OperationalError

from auth.models import AuthEventKind, WorkflowStatus
from auth.tokens import create_access_token
from auth.workflow import GENERIC_ERROR_MESSAGE, AuthWorkflow, FileTokenStore, MemoryTokenStore
from core.errors import DuplicateEmail


@pytest.fixture
def workflow(auth_service) -> AuthWorkflow:
    return AuthWorkflow(auth_service)


def _kinds(workflow: AuthWorkflow) -> list[AuthEventKind]:
    return [e.kind for e in workflow.state.events]


class TestRegisterAndLogin:
    def test_register_authenticates(self, workflow) -> None:
        state = workflow.register("reg@example.com", "password123", "Reg")
        assert state.status is WorkflowStatus.AUTHENTICATED
        assert state.user.email == "reg@example.com"
        assert state.error is None
        assert workflow.tokens.load() is not None
        assert _kinds(workflow) == [AuthEventKind.REGISTERED]

    def test_register_duplicate_surfaces_first_error(self, workflow) -> None:
        workflow.register("dup@example.com", "password123", "First")
        workflow.logout()
        state = workflow.register("dup@example.com", "password123", "Second")
        assert state.status is WorkflowStatus.ERROR
        assert state.error == DuplicateEmail.default_message
        assert workflow.state.events[-1].kind is AuthEventKind.AUTH_ERROR
        assert workflow.state.events[-1].message == DuplicateEmail.default_message
        assert state.is_loading is False

    def test_overlong_password_is_an_auth_error(self, workflow) -> None:
        state = workflow.register("long@example.com", "a" * 100, "Long")
        assert state.status is WorkflowStatus.ERROR
        assert state.error == "Password must be at most 72 bytes"
        assert _kinds(workflow) == [AuthEventKind.AUTH_ERROR]
        assert state.is_loading is False
        assert workflow.tokens.load() is None

    def test_register_then_login_same_identity(self, auth_service) -> None:
        first = AuthWorkflow(auth_service)
        first.register("same@example.com", "password123", "Same")
        second = AuthWorkflow(auth_service)
        second.login("same@example.com", "password123")
        assert second.state.is_authenticated
        assert second.state.user.id == first.state.user.id
        assert _kinds(second) == [AuthEventKind.LOGGED_IN]

    def test_login_failure_messages_do_not_leak(self, workflow, make_user) -> None:
        make_user("known")
        workflow.login("known@example.com", "wrong-password")
        wrong_password = workflow.state.error
        workflow.login("unknown@example.com", "password123")
        assert workflow.state.error == wrong_password
        assert workflow.state.status is WorkflowStatus.ERROR
        assert workflow.tokens.load() is None


class TestLoadUser:
    def test_no_token_is_anonymous_without_error(self, workflow) -> None:
        state = workflow.load_user()
        assert state.status is WorkflowStatus.ANONYMOUS
        assert state.error is None
        assert state.events == []

    def test_valid_token_restores_session(self, auth_service, make_user) -> None:
        user = make_user("back")
        workflow = AuthWorkflow(auth_service, tokens=MemoryTokenStore(create_access_token(user.id)))
        state = workflow.load_user()
        assert state.status is WorkflowStatus.AUTHENTICATED
        assert state.user.id == user.id
        assert _kinds(workflow) == [AuthEventKind.AUTHENTICATED_FROM_TOKEN]

    def test_stale_token_is_discarded_silently(self, auth_service, user_store, make_user) -> None:
        user = make_user("stale")
        tokens = MemoryTokenStore(create_access_token(user.id))
        user_store.delete_user(user.id)
        workflow = AuthWorkflow(auth_service, tokens=tokens)
        state = workflow.load_user()
        assert state.status is WorkflowStatus.ANONYMOUS
        assert state.events == []
        assert tokens.load() is None


class TestLogoutAndDelete:
    def test_logout_discards_token(self, workflow) -> None:
        workflow.register("out@example.com", "password123", "Out")
        state = workflow.logout()
        assert state.status is WorkflowStatus.ANONYMOUS
        assert state.user is None
        assert workflow.tokens.load() is None
        assert _kinds(workflow)[-1] is AuthEventKind.LOGGED_OUT

    def test_delete_account(self, workflow, user_store) -> None:
        workflow.register("del@example.com", "password123", "Del")
        state = workflow.delete_account("password123")
        assert state.status is WorkflowStatus.ANONYMOUS
        assert workflow.tokens.load() is None
        assert user_store.get_by_email("del@example.com") is None
        assert _kinds(workflow)[-1] is AuthEventKind.ACCOUNT_DELETED

    def test_delete_account_wrong_password(self, workflow, user_store) -> None:
        workflow.register("keep@example.com", "password123", "Keep")
        state = workflow.delete_account("wrong-password")
        assert state.status is WorkflowStatus.ERROR
        assert state.error == "Incorrect password"
        assert workflow.tokens.load() is not None
        assert user_store.get_by_email("keep@example.com") is not None

    def test_delete_account_without_session(self, workflow) -> None:
        state = workflow.delete_account("password123")
        assert state.status is WorkflowStatus.ERROR
        assert _kinds(workflow) == [AuthEventKind.AUTH_ERROR]


class _RecordingService:
    """Stands in for AuthService to observe the loading flag mid-call."""

    def __init__(self, workflow_ref: list, error: Exception | None = None) -> None:
        self._workflow_ref = workflow_ref
        self._error = error
        self.loading_seen: list[bool] = []

    def login(self, email, password):
        self.loading_seen.append(self._workflow_ref[0].state.is_loading)
        if self._error is not None:
            raise self._error
        return "token"

    def current_user(self, token):
        return None


class TestLoadingFlag:
    def test_true_during_call_false_after_failure(self) -> None:
        ref: list = []
        service = _RecordingService(ref, error=DuplicateEmail())
        workflow = AuthWorkflow(service)
        ref.append(workflow)
        workflow.login("a@example.com", "pw")
        assert service.loading_seen == [True]
        assert workflow.state.is_loading is False

    def test_storage_error_gets_generic_message(self) -> None:
        ref: list = []
        service = _RecordingService(ref, error=OperationalError("SELECT 1", {}, Exception("disk I/O error")))
        workflow = AuthWorkflow(service)
        ref.append(workflow)
        state = workflow.login("a@example.com", "pw")
        assert state.error == GENERIC_ERROR_MESSAGE
        assert state.status is WorkflowStatus.ERROR
        assert state.is_loading is False

    def test_unexpected_exception_still_clears_flag(self) -> None:
        ref: list = []
        service = _RecordingService(ref, error=RuntimeError("boom"))
        workflow = AuthWorkflow(service)
        ref.append(workflow)
        with pytest.raises(RuntimeError):
            workflow.login("a@example.com", "pw")
        assert workflow.state.is_loading is False
        assert workflow.state.status is WorkflowStatus.ERROR


class TestSubscribers:
    def test_listener_receives_events_until_unsubscribed(self, workflow) -> None:
        received = []
        unsubscribe = workflow.subscribe(received.append)
        workflow.register("sub@example.com", "password123", "Sub")
        unsubscribe()
        workflow.logout()
        assert [e.kind for e in received] == [AuthEventKind.REGISTERED]


class TestFileTokenStore:
    def test_session_survives_new_workflow(self, auth_service, tmp_path) -> None:
        path = tmp_path / "session" / "token"
        first = AuthWorkflow(auth_service, tokens=FileTokenStore(path))
        first.register("file@example.com", "password123", "File")
        assert path.exists()

        second = AuthWorkflow(auth_service, tokens=FileTokenStore(path))
        assert second.load_user().status is WorkflowStatus.AUTHENTICATED

        second.logout()
        assert not path.exists()

    def test_missing_file_loads_nothing(self, tmp_path) -> None:
        assert FileTokenStore(tmp_path / "absent").load() is None

    @pytest.mark.skipif(os.name != "posix", reason="POSIX file modes")
    def test_token_file_is_private(self, tmp_path) -> None:
        path = tmp_path / "token"
        path.write_text("old", encoding="utf-8")
        path.chmod(0o644)
        FileTokenStore(path).save("fresh-token")
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert FileTokenStore(path).load() == "fresh-token"

        new_path = tmp_path / "new" / "token"
        FileTokenStore(new_path).save("another")
        assert stat.S_IMODE(new_path.stat().st_mode) == 0o600
