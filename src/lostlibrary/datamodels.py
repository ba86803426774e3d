from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config import CATEGORIES, SHARE_DESCRIPTION_LIMIT, SITE_NAME, SITE_URL
from .errors import SchemaMismatch

SCHEMA_VERSION = 1


# --- Backend models ---
@dataclass
class User:
    id: str
    email: str


@dataclass
class Session:
    access_token: str
    refresh_token: str
    user: User
    expires_at: Optional[float] = None


@dataclass
class AuthResult:
    user: User
    session: Session


@dataclass
class Profile:
    id: str
    username: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    website: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.username or "Anonymous"

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Profile":
        return cls(
            id=row.get("id", ""),
            username=row.get("username"),
            full_name=row.get("full_name"),
            avatar_url=row.get("avatar_url"),
            bio=row.get("bio"),
            website=row.get("website"),
        )


@dataclass
class Article:
    id: str
    title: str
    slug: str
    excerpt: Optional[str] = None
    content: Optional[str] = None
    category: Optional[str] = None
    published_at: Optional[str] = None
    view_count: int = 0
    image_url: Optional[str] = None
    user_id: Optional[str] = None
    author: Optional[Profile] = None
    favorited: bool = False

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Article":
        author_row = row.get("profiles")
        return cls(
            id=row["id"],
            title=row.get("title") or "Untitled",
            slug=row.get("slug") or "",
            excerpt=row.get("excerpt"),
            content=row.get("content"),
            category=row.get("category"),
            published_at=row.get("published_at"),
            view_count=row.get("view_count") or 0,
            image_url=row.get("image_url"),
            user_id=row.get("user_id"),
            author=Profile.from_row(author_row) if isinstance(author_row, dict) else None,
        )

    @property
    def author_name(self) -> str:
        return self.author.display_name if self.author else "Anonymous"

    @property
    def category_label(self) -> str:
        if not self.category:
            return "Uncategorized"
        return CATEGORIES.get(self.category, self.category)

    @property
    def published_date(self) -> str:
        """Publication date formatted like 'Mar 15, 2024'."""
        if not self.published_at:
            return ""
        try:
            dt = datetime.fromisoformat(self.published_at.replace("Z", "+00:00"))
        except ValueError:
            return self.published_at
        return f"{dt.strftime('%b')} {dt.day}, {dt.year}"

    @property
    def url(self) -> str:
        return f"{SITE_URL}/articles/{self.slug}"

    @property
    def share_description(self) -> str:
        text = self.excerpt or self.content
        if not text:
            return f"Read this article on {SITE_NAME}"
        if len(text) > SHARE_DESCRIPTION_LIMIT:
            return text[: SHARE_DESCRIPTION_LIMIT - 3] + "..."
        return text


# --- Device-persisted records ---
@dataclass
class StoredAccount:
    id: str
    email: Optional[str] = None
    username: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    last_session_token: Optional[str] = None
    last_refresh_token: Optional[str] = None
    captured_at: Optional[float] = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.username or self.email or self.id

    @property
    def has_session(self) -> bool:
        return bool(self.last_refresh_token)

    def supplied_fields(self) -> Dict[str, Any]:
        """Fields carrying a value. None means 'not supplied' for merges."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def to_record(self) -> Dict[str, Any]:
        record = asdict(self)
        record["version"] = SCHEMA_VERSION
        return record

    @classmethod
    def from_record(cls, record: Any) -> "StoredAccount":
        if not isinstance(record, dict):
            raise SchemaMismatch(f"account record is not an object: {record!r}")
        version = record.get("version")
        if version != SCHEMA_VERSION:
            raise SchemaMismatch(f"unsupported account record version: {version!r}")
        if not isinstance(record.get("id"), str) or not record["id"]:
            raise SchemaMismatch("account record has no id")
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in record.items() if k in known}
        for name in ("email", "username", "full_name", "avatar_url",
                     "last_session_token", "last_refresh_token"):
            if values.get(name) is not None and not isinstance(values[name], str):
                raise SchemaMismatch(f"account field {name} is not a string")
        captured = values.get("captured_at")
        if captured is not None and not isinstance(captured, (int, float)):
            raise SchemaMismatch("account field captured_at is not a timestamp")
        return cls(**values)


@dataclass
class FavoriteList:
    user_id: str
    article_ids: List[str] = field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        return {"version": SCHEMA_VERSION, "user_id": self.user_id, "article_ids": self.article_ids}

    @classmethod
    def from_record(cls, user_id: str, record: Any) -> "FavoriteList":
        if not isinstance(record, dict) or record.get("version") != SCHEMA_VERSION:
            raise SchemaMismatch(f"unsupported favorites record for user {user_id}")
        ids = record.get("article_ids")
        if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
            raise SchemaMismatch(f"favorites for user {user_id} are not a list of ids")
        return cls(user_id=user_id, article_ids=list(ids))
