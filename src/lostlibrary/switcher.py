from __future__ import annotations

import logging
from enum import Enum
from typing import List, Optional

from .accounts import AccountStore
from .auth import AuthService
from .datamodels import Session, StoredAccount
from .errors import BackendError, ValidationError
from .identity import IdentityBus
from .sessions import RestoreFailure, SessionManager

logger = logging.getLogger("lostlibrary")


class SwitcherState(Enum):
    IDLE = "idle"
    ACCOUNT_LIST_SHOWN = "account_list_shown"
    RESTORING_SESSION = "restoring_session"
    PROMPTING_PASSWORD = "prompting_password"
    ACTIVE = "active"
    CANCELLED = "cancelled"


class SwitcherError(Exception):
    """An action was requested in a state that does not allow it."""


class AccountSwitcher:
    """Drives one account switch: pick, try a silent restore, else ask for the password.

    choose() blocks on the network and is meant to run in a worker. A
    restore outcome that lands after cancel() is discarded.
    """

    def __init__(
        self,
        accounts: AccountStore,
        sessions: SessionManager,
        auth: AuthService,
        identity: IdentityBus,
    ):
        self.accounts = accounts
        self.sessions = sessions
        self.auth = auth
        self.identity = identity
        self.state = SwitcherState.IDLE
        self.history: List[SwitcherState] = [SwitcherState.IDLE]
        self.account_list: List[StoredAccount] = []
        self.selected: Optional[StoredAccount] = None
        self.prefill_email: Optional[str] = None
        self.email_read_only = False
        self.error: Optional[str] = None
        self.last_failure: Optional[RestoreFailure] = None
        self._attempt = 0

    def _transition(self, state: SwitcherState) -> None:
        logger.debug("Switcher %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def _clear_transient(self) -> None:
        self.prefill_email = None
        self.email_read_only = False
        self.error = None

    @property
    def busy(self) -> bool:
        return self.state is SwitcherState.RESTORING_SESSION

    def open(self) -> List[StoredAccount]:
        if self.state not in (SwitcherState.IDLE, SwitcherState.ACTIVE):
            raise SwitcherError(f"cannot open the switcher while {self.state.value}")
        self._clear_transient()
        self.selected = None
        self.last_failure = None
        self.account_list = self.accounts.list_accounts()
        self._transition(SwitcherState.ACCOUNT_LIST_SHOWN)
        return self.account_list

    def choose(self, account_id: str) -> SwitcherState:
        if self.state is SwitcherState.RESTORING_SESSION:
            logger.info("Ignoring switch to %s, a restore is in progress", account_id)
            return self.state
        if self.state is not SwitcherState.ACCOUNT_LIST_SHOWN:
            raise SwitcherError(f"cannot choose an account while {self.state.value}")

        account = next((a for a in self.account_list if a.id == account_id), None)
        if account is None:
            account = self.accounts.get_account(account_id)
        if account is None:
            raise SwitcherError(f"unknown account {account_id}")
        self.selected = account

        if not account.has_session:
            self.last_failure = RestoreFailure.NO_STORED_SESSION
            self._prompt_password(account)
            return self.state

        self._transition(SwitcherState.RESTORING_SESSION)
        self._attempt += 1
        attempt = self._attempt
        previous = self.sessions.backend.get_active_session()
        result = self.sessions.restore_session(account.id)

        if attempt != self._attempt or self.state is not SwitcherState.RESTORING_SESSION:
            logger.info("Discarding late restore outcome for %s", account.id)
            if result.ok:
                self._roll_back(previous)
            return self.state

        if result.ok and result.session is not None:
            self._enter_active()
            self.identity.publish(result.session.user)
            return self.state

        self.last_failure = result.reason
        self._prompt_password(account)
        if result.reason is RestoreFailure.BACKEND_UNAVAILABLE:
            self.error = "Could not reach the server. Enter your password or try again later."
        return self.state

    def _prompt_password(self, account: StoredAccount) -> None:
        self.prefill_email = account.email
        self.email_read_only = True
        self.error = None
        self._transition(SwitcherState.PROMPTING_PASSWORD)

    def submit_password(self, password: str) -> SwitcherState:
        if self.state is not SwitcherState.PROMPTING_PASSWORD:
            raise SwitcherError(f"no password prompt while {self.state.value}")
        self._attempt += 1
        attempt = self._attempt
        previous = self.sessions.backend.get_active_session()
        email = self.prefill_email or ""
        try:
            self.auth.sign_in(email, password)
        except (ValidationError, BackendError) as e:
            if attempt == self._attempt:
                self.error = str(e)
            return self.state

        if attempt != self._attempt or self.state is not SwitcherState.PROMPTING_PASSWORD:
            logger.info("Discarding late sign-in for %s", email)
            self._roll_back(previous)
            return self.state
        self._enter_active()
        return self.state

    def _roll_back(self, previous: Optional[Session]) -> None:
        """Put back the session that was active before a cancelled switch."""
        self.sessions.backend.set_active_session(previous)
        user = previous.user if previous else None
        current = self.identity.current
        if (current.id if current else None) != (user.id if user else None):
            self.identity.publish(user)

    def cancel(self) -> SwitcherState:
        if self.state in (SwitcherState.IDLE, SwitcherState.ACTIVE):
            return self.state
        self._attempt += 1
        self._transition(SwitcherState.CANCELLED)
        self._clear_transient()
        self.selected = None
        self._transition(SwitcherState.IDLE)
        return self.state

    def _enter_active(self) -> None:
        self._transition(SwitcherState.ACTIVE)
        self._clear_transient()
