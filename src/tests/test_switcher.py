from __future__ import annotations

import pytest

from lostlibrary.sessions import RestoreFailure, RestoreResult
from lostlibrary.switcher import SwitcherError, SwitcherState


@pytest.fixture
def remembered(auth, backend):
    """A device where Ada, Bede and Clio signed in once; Bede's tokens were never captured."""
    auth.sign_in("ada@example.com", "pw-a")
    auth.sign_in("bede@example.com", "pw-b")
    auth.sign_in("clio@example.com", "pw-c")
    auth.accounts.forget_session("user-b")
    return auth.accounts


def test_switch_restores_stored_session_without_password(remembered, switcher, backend, identity):
    seen = []
    identity.subscribe(seen.append)
    switcher.open()

    state = switcher.choose("user-a")

    assert state is SwitcherState.ACTIVE
    assert backend.get_active_session().user.id == "user-a"
    assert identity.current.id == "user-a"
    assert [u.id for u in seen] == ["user-a"]
    assert SwitcherState.PROMPTING_PASSWORD not in switcher.history
    assert switcher.history[-3:] == [
        SwitcherState.ACCOUNT_LIST_SHOWN,
        SwitcherState.RESTORING_SESSION,
        SwitcherState.ACTIVE,
    ]
    assert backend.sign_in_calls == 3


def test_switch_without_stored_session_prompts_with_prefilled_email(remembered, switcher, backend):
    switcher.open()

    state = switcher.choose("user-b")

    assert state is SwitcherState.PROMPTING_PASSWORD
    assert switcher.prefill_email == "bede@example.com"
    assert switcher.email_read_only
    assert switcher.last_failure is RestoreFailure.NO_STORED_SESSION
    assert backend.exchange_calls == []


def test_switch_with_revoked_token_prompts_for_password(remembered, switcher, backend):
    token = remembered.get_account("user-c").last_refresh_token
    backend.revoke(token)
    switcher.open()

    state = switcher.choose("user-c")

    assert state is SwitcherState.PROMPTING_PASSWORD
    assert switcher.last_failure is RestoreFailure.TOKEN_EXPIRED_OR_REVOKED
    assert switcher.prefill_email == "clio@example.com"
    assert switcher.email_read_only
    assert backend.exchange_calls == [token]


def test_backend_unavailable_prompts_with_retryable_message(remembered, switcher, backend):
    before = remembered.get_account("user-a")
    backend.unavailable = True
    switcher.open()

    state = switcher.choose("user-a")

    assert state is SwitcherState.PROMPTING_PASSWORD
    assert switcher.last_failure is RestoreFailure.BACKEND_UNAVAILABLE
    assert "try again" in switcher.error
    assert remembered.get_account("user-a") == before


def test_password_prompt_success_captures_session(remembered, switcher, backend, identity):
    switcher.open()
    switcher.choose("user-b")

    state = switcher.submit_password("pw-b")

    assert state is SwitcherState.ACTIVE
    assert identity.current.id == "user-b"
    assert remembered.get_account("user-b").has_session
    assert switcher.prefill_email is None
    assert switcher.error is None
    assert not switcher.email_read_only


def test_wrong_password_stays_in_prompt(remembered, switcher):
    switcher.open()
    switcher.choose("user-b")

    state = switcher.submit_password("nope")

    assert state is SwitcherState.PROMPTING_PASSWORD
    assert switcher.error == "Invalid login credentials"
    assert switcher.prefill_email == "bede@example.com"


def test_empty_password_is_rejected_without_network(remembered, switcher, backend):
    switcher.open()
    switcher.choose("user-b")
    calls = backend.sign_in_calls

    state = switcher.submit_password("")

    assert state is SwitcherState.PROMPTING_PASSWORD
    assert switcher.error == "Password is required."
    assert backend.sign_in_calls == calls


def test_cancel_from_prompt_returns_to_idle(remembered, switcher):
    switcher.open()
    switcher.choose("user-b")

    state = switcher.cancel()

    assert state is SwitcherState.IDLE
    assert switcher.history[-2:] == [SwitcherState.CANCELLED, SwitcherState.IDLE]
    assert switcher.prefill_email is None
    assert switcher.error is None


def test_late_restore_outcome_is_discarded(remembered, switcher, sessions, backend, identity, monkeypatch):
    current = identity.current
    original = sessions.restore_session

    def restore_then_user_closes(account_id):
        result = original(account_id)
        switcher.cancel()
        return result

    monkeypatch.setattr(sessions, "restore_session", restore_then_user_closes)
    switcher.open()

    state = switcher.choose("user-a")

    assert state is SwitcherState.IDLE
    assert identity.current == current
    assert backend.get_active_session().user.id == identity.current.id
    assert remembered.get_account("user-a").has_session


def test_late_password_sign_in_is_rolled_back(remembered, switcher, auth, backend, identity, monkeypatch):
    original = auth.sign_in

    def sign_in_then_user_closes(email, password):
        user = original(email, password)
        switcher.cancel()
        return user

    monkeypatch.setattr(auth, "sign_in", sign_in_then_user_closes)
    switcher.open()
    switcher.choose("user-b")

    state = switcher.submit_password("pw-b")

    assert state is SwitcherState.IDLE
    assert SwitcherState.ACTIVE not in switcher.history[-3:]
    assert identity.current.id == "user-c"
    assert backend.get_active_session().user.id == "user-c"
    assert remembered.get_account("user-b").has_session


def test_reentrant_choice_is_ignored(remembered, switcher, sessions, monkeypatch):
    nested = {}

    def restore(account_id):
        nested["state"] = switcher.choose("user-c")
        return RestoreResult.failure(RestoreFailure.TOKEN_EXPIRED_OR_REVOKED)

    monkeypatch.setattr(sessions, "restore_session", restore)
    switcher.open()
    switcher.choose("user-a")

    assert nested["state"] is SwitcherState.RESTORING_SESSION
    assert switcher.selected.id == "user-a"


def test_choose_before_open_is_an_error(switcher):
    with pytest.raises(SwitcherError):
        switcher.choose("user-a")


def test_open_lists_accounts_in_store_order(remembered, switcher):
    accounts = switcher.open()
    assert [a.id for a in accounts] == ["user-a", "user-b", "user-c"]
    assert switcher.state is SwitcherState.ACCOUNT_LIST_SHOWN


def test_switcher_reopens_after_active(remembered, switcher):
    switcher.open()
    switcher.choose("user-a")
    switcher.open()
    assert switcher.state is SwitcherState.ACCOUNT_LIST_SHOWN
