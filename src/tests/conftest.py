from __future__ import annotations

import itertools
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pytest

from lostlibrary.accounts import AccountStore
from lostlibrary.auth import AuthService
from lostlibrary.backend.base import Backend
from lostlibrary.datamodels import Article, AuthResult, Profile, Session, User
from lostlibrary.errors import AuthenticationError, BackendError, BackendUnavailable
from lostlibrary.favorites import FavoritesStore
from lostlibrary.identity import IdentityBus
from lostlibrary.sessions import SessionManager
from lostlibrary.storage import DeviceStorage
from lostlibrary.switcher import AccountSwitcher


class FakeBackend(Backend):
    """In-memory stand-in for the hosted backend."""

    def __init__(self) -> None:
        self.users: Dict[str, Tuple[str, User]] = {}
        self.profiles: Dict[str, Profile] = {}
        self.articles: Dict[str, Article] = {}
        self.likes: set = set()
        self.valid_refresh_tokens: Dict[str, str] = {}
        self.active_session: Optional[Session] = None
        self.unavailable = False
        self.exchange_calls: List[str] = []
        self.sign_in_calls = 0
        self._tokens = itertools.count(1)

    def add_user(self, user_id: str, email: str, password: str, **profile: Any) -> User:
        user = User(id=user_id, email=email)
        self.users[email] = (password, user)
        self.profiles[user_id] = Profile(id=user_id, **profile)
        return user

    def _issue(self, user: User) -> Session:
        n = next(self._tokens)
        session = Session(
            access_token=f"access-{user.id}-{n}",
            refresh_token=f"refresh-{user.id}-{n}",
            user=user,
            expires_at=1_000_000.0 + n,
        )
        self.valid_refresh_tokens[session.refresh_token] = user.id
        self.active_session = session
        return session

    def _check(self) -> None:
        if self.unavailable:
            raise BackendUnavailable("Could not reach the server.")

    def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        self.sign_in_calls += 1
        self._check()
        entry = self.users.get(email)
        if entry is None or entry[0] != password:
            raise AuthenticationError("Invalid login credentials", 400)
        session = self._issue(entry[1])
        return AuthResult(user=entry[1], session=session)

    def exchange_session_tokens(self, refresh_token: str) -> Session:
        self.exchange_calls.append(refresh_token)
        self._check()
        user_id = self.valid_refresh_tokens.pop(refresh_token, None)
        if user_id is None:
            raise AuthenticationError("Invalid Refresh Token: Refresh Token Not Found", 400)
        user = next(u for _, u in self.users.values() if u.id == user_id)
        return self._issue(user)

    def revoke(self, refresh_token: str) -> None:
        self.valid_refresh_tokens.pop(refresh_token, None)

    def get_active_session(self) -> Optional[Session]:
        return self.active_session

    def set_active_session(self, session: Optional[Session]) -> None:
        self.active_session = session

    def sign_out(self) -> None:
        self.active_session = None

    def get_profile(self, user_id: str) -> Profile:
        self._check()
        if user_id not in self.profiles:
            raise BackendError(f"No profile for user {user_id}.", 404)
        return self.profiles[user_id]

    def update_profile(self, user_id: str, fields: Dict[str, Any]) -> None:
        self._check()
        profile = self.profiles.setdefault(user_id, Profile(id=user_id))
        for key, value in fields.items():
            setattr(profile, key, value)

    def get_articles_by_ids(self, ids: Iterable[str]) -> List[Article]:
        self._check()
        wanted = set(ids)
        # Deliberately reversed to mimic an unordered result.
        return [a for a in reversed(list(self.articles.values())) if a.id in wanted]

    def list_published_articles(self, category: Optional[str] = None) -> List[Article]:
        self._check()
        return [a for a in self.articles.values() if category in (None, a.category)]

    def get_article_by_slug(self, slug: str) -> Article:
        self._check()
        for article in self.articles.values():
            if article.slug == slug:
                return article
        raise BackendError("Article not found or has been removed.", 404)

    def increment_view_count(self, article: Article) -> None:
        article.view_count += 1

    def is_liked(self, article_id: str, user_id: str) -> bool:
        return (article_id, user_id) in self.likes

    def like(self, article_id: str, user_id: str) -> None:
        self.likes.add((article_id, user_id))

    def unlike(self, article_id: str, user_id: str) -> None:
        self.likes.discard((article_id, user_id))

    def count_likes(self, article_id: str) -> int:
        return sum(1 for a, _ in self.likes if a == article_id)


@pytest.fixture
def storage(tmp_path):
    return DeviceStorage(str(tmp_path / "storage.json"))


@pytest.fixture
def accounts(storage):
    return AccountStore(storage)


@pytest.fixture
def favorites(storage):
    return FavoritesStore(storage)


@pytest.fixture
def backend():
    fake = FakeBackend()
    fake.add_user("user-a", "ada@example.com", "pw-a", username="ada", full_name="Ada Lovelace")
    fake.add_user("user-b", "bede@example.com", "pw-b", username="bede")
    fake.add_user("user-c", "clio@example.com", "pw-c", full_name="Clio")
    return fake


@pytest.fixture
def identity():
    return IdentityBus()


@pytest.fixture
def sessions(backend, accounts):
    return SessionManager(backend, accounts, clock=lambda: 1700000000.0)


@pytest.fixture
def auth(backend, accounts, sessions, identity):
    return AuthService(backend, accounts, sessions, identity)


@pytest.fixture
def switcher(accounts, sessions, auth, identity):
    return AccountSwitcher(accounts, sessions, auth, identity)
