from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from ..datamodels import Article, AuthResult, Profile, Session


class Backend(ABC):
    """Abstract base class for the hosted backend (auth plus data tables)."""

    # --- auth ---
    @abstractmethod
    def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        """Sign in with credentials; the new session becomes the active one."""
        pass

    @abstractmethod
    def exchange_session_tokens(self, refresh_token: str) -> Session:
        """Trade a refresh token for a fresh session; it becomes the active one."""
        pass

    @abstractmethod
    def get_active_session(self) -> Optional[Session]:
        pass

    @abstractmethod
    def set_active_session(self, session: Optional[Session]) -> None:
        """Adopt an already-issued session, or drop the active one with None."""
        pass

    @abstractmethod
    def sign_out(self) -> None:
        pass

    # --- profiles ---
    @abstractmethod
    def get_profile(self, user_id: str) -> Profile:
        pass

    @abstractmethod
    def update_profile(self, user_id: str, fields: Dict[str, Any]) -> None:
        pass

    # --- articles ---
    @abstractmethod
    def get_articles_by_ids(self, ids: Iterable[str]) -> List[Article]:
        """Published articles with the given ids, in no particular order."""
        pass

    @abstractmethod
    def list_published_articles(self, category: Optional[str] = None) -> List[Article]:
        """Published articles, newest first, with author profiles embedded."""
        pass

    @abstractmethod
    def get_article_by_slug(self, slug: str) -> Article:
        pass

    @abstractmethod
    def increment_view_count(self, article: Article) -> None:
        pass

    # --- likes ---
    @abstractmethod
    def is_liked(self, article_id: str, user_id: str) -> bool:
        pass

    @abstractmethod
    def like(self, article_id: str, user_id: str) -> None:
        pass

    @abstractmethod
    def unlike(self, article_id: str, user_id: str) -> None:
        pass

    @abstractmethod
    def count_likes(self, article_id: str) -> int:
        pass
