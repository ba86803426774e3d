from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .accounts import AccountStore
from .backend.base import Backend
from .datamodels import Session, StoredAccount
from .errors import BackendError, BackendUnavailable, LostLibraryError

logger = logging.getLogger("lostlibrary")


class RestoreFailure(Enum):
    NO_STORED_SESSION = "no_stored_session"
    TOKEN_EXPIRED_OR_REVOKED = "token_expired_or_revoked"
    BACKEND_UNAVAILABLE = "backend_unavailable"


@dataclass
class RestoreResult:
    ok: bool
    reason: Optional[RestoreFailure] = None
    session: Optional[Session] = None
    message: str = ""

    @classmethod
    def success(cls, session: Session) -> "RestoreResult":
        return cls(ok=True, session=session)

    @classmethod
    def failure(cls, reason: RestoreFailure, message: str = "") -> "RestoreResult":
        return cls(ok=False, reason=reason, message=message)


class SessionManager:
    """Captures backend sessions into stored accounts and restores them later."""

    def __init__(
        self,
        backend: Backend,
        accounts: AccountStore,
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.accounts = accounts
        self.clock = clock

    def capture_session(self, account_id: str) -> bool:
        """Store the active session's tokens on the account. Never raises."""
        try:
            session = self.backend.get_active_session()
            if session is None:
                logger.warning("No active session to capture for %s", account_id)
                return False
            if session.user.id != account_id:
                logger.warning(
                    "Active session belongs to %s, not capturing it for %s",
                    session.user.id,
                    account_id,
                )
                return False
            self.accounts.upsert_account(
                StoredAccount(
                    id=account_id,
                    email=session.user.email or None,
                    last_session_token=session.access_token,
                    last_refresh_token=session.refresh_token,
                    captured_at=self.clock(),
                )
            )
            logger.debug("Captured session for %s", account_id)
            return True
        except LostLibraryError as e:
            logger.error("Failed to capture session for %s: %s", account_id, e)
            return False

    def restore_session(self, account_id: str) -> RestoreResult:
        """Re-establish the account's session from its stored refresh token.

        Exactly one exchange is attempted. A failure means "ask for the
        password", not "try again".
        """
        account = self.accounts.get_account(account_id)
        if account is None or not account.has_session:
            logger.info("No stored session for %s", account_id)
            return RestoreResult.failure(RestoreFailure.NO_STORED_SESSION)

        try:
            session = self.backend.exchange_session_tokens(account.last_refresh_token)
        except BackendUnavailable as e:
            logger.warning("Backend unavailable while restoring %s: %s", account_id, e)
            return RestoreResult.failure(RestoreFailure.BACKEND_UNAVAILABLE, str(e))
        except BackendError as e:
            logger.info("Stored session for %s rejected: %s", account_id, e)
            self.accounts.forget_session(account_id)
            return RestoreResult.failure(RestoreFailure.TOKEN_EXPIRED_OR_REVOKED, str(e))

        # Refresh tokens rotate on every exchange.
        self.capture_session(account_id)
        return RestoreResult.success(session)
