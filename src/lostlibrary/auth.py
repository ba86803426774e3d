from __future__ import annotations

import logging
from typing import Optional

from .accounts import AccountStore
from .backend.base import Backend
from .datamodels import Profile, StoredAccount, User
from .errors import BackendError, ValidationError
from .identity import IdentityBus
from .sessions import SessionManager

logger = logging.getLogger("lostlibrary")


def validate_credentials(email: str, password: str) -> None:
    if not email or not email.strip():
        raise ValidationError("Email is required.")
    if not password:
        raise ValidationError("Password is required.")


class AuthService:
    """Interactive sign-in and sign-out, plus resuming the last session at startup."""

    def __init__(
        self,
        backend: Backend,
        accounts: AccountStore,
        sessions: SessionManager,
        identity: IdentityBus,
    ):
        self.backend = backend
        self.accounts = accounts
        self.sessions = sessions
        self.identity = identity

    @property
    def current_user(self) -> Optional[User]:
        return self.identity.current

    def sign_in(self, email: str, password: str) -> User:
        validate_credentials(email, password)
        result = self.backend.sign_in_with_password(email.strip(), password)
        user = result.user

        profile: Optional[Profile] = None
        try:
            profile = self.backend.get_profile(user.id)
        except BackendError as e:
            logger.info("Profile lookup failed for %s: %s", user.id, e)

        self.accounts.upsert_account(
            StoredAccount(
                id=user.id,
                email=user.email or email.strip(),
                username=profile.username if profile else None,
                full_name=profile.full_name if profile else None,
                avatar_url=profile.avatar_url if profile else None,
            )
        )
        self.sessions.capture_session(user.id)
        logger.info("Successfully signed in and stored account data")
        self.identity.publish(user)
        return user

    def sign_out(self) -> None:
        """End the backend session. The stored account stays on this device."""
        try:
            self.backend.sign_out()
        except BackendError as e:
            logger.warning("Error signing out: %s", e)
        self.identity.publish(None)

    def resume(self) -> Optional[User]:
        """Restore the most recently captured account, if it still has a valid session."""
        account = self.accounts.most_recent()
        if account is None:
            return None
        result = self.sessions.restore_session(account.id)
        if not result.ok or result.session is None:
            logger.info("Could not resume %s: %s", account.id, result.reason)
            return None
        self.identity.publish(result.session.user)
        return result.session.user

    def refresh_account_display(self, user_id: str, profile: Profile) -> None:
        """Copy freshly saved profile fields onto the stored account."""
        self.accounts.upsert_account(
            StoredAccount(
                id=user_id,
                username=profile.username or None,
                full_name=profile.full_name or None,
                avatar_url=profile.avatar_url or None,
            )
        )
