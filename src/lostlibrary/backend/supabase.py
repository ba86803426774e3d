from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import HTTP_TIMEOUT, REQUEST_HEADERS
from ..datamodels import Article, AuthResult, Profile, Session, User
from ..errors import AuthenticationError, BackendError, BackendUnavailable
from .base import Backend

logger = logging.getLogger("lostlibrary")

ARTICLES_TABLE = "public_articles"
PROFILES_TABLE = "profiles"
LIKES_TABLE = "likes"

PROFILE_COLUMNS = "id,username,full_name,avatar_url,bio,website"
FEED_SELECT = "*,profiles:user_id(id,username,full_name,avatar_url)"
FAVORITE_SELECT = "id,title,slug,excerpt,image_url,published_at"


class SupabaseBackend(Backend):
    """Supabase auth and PostgREST over plain HTTP.

    The active session lives on the instance; construct one per app and
    hand it to whatever needs it.
    """

    def __init__(self, url: str, anon_key: str, timeout: int = HTTP_TIMEOUT):
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self.session = self._create_session()
        self.active_session: Optional[Session] = None

    def _create_session(self) -> requests.Session:
        s = requests.Session()
        s.headers.update(REQUEST_HEADERS)
        s.headers["apikey"] = self.anon_key
        # Only idempotent reads are retried; auth POSTs go out once.
        retries = Retry(
            total=3, backoff_factor=0.3, status_forcelist=[502, 503, 504]
        )
        adapter = HTTPAdapter(max_retries=retries)
        s.mount("https://", adapter)
        s.mount("http://", adapter)
        return s

    def _auth_headers(self) -> Dict[str, str]:
        token = self.active_session.access_token if self.active_session else self.anon_key
        return {"Authorization": f"Bearer {token}"}

    def _request(
        self,
        method: str,
        path: str,
        *,
        auth_call: bool = False,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> requests.Response:
        url = f"{self.url}{path}"
        merged = self._auth_headers()
        merged.update(headers or {})
        logger.debug("%s %s", method, path)
        try:
            resp = self.session.request(
                method, url, headers=merged, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            logger.warning("Backend request %s %s failed: %s", method, path, e)
            raise BackendUnavailable(f"Could not reach the server: {e}") from e

        if resp.status_code >= 500:
            logger.warning("Backend %s %s answered %d", method, path, resp.status_code)
            raise BackendUnavailable(
                f"The server is unavailable ({resp.status_code}).", resp.status_code
            )
        if resp.status_code >= 400:
            message = _error_message(resp)
            logger.info("Backend %s %s rejected (%d): %s", method, path, resp.status_code, message)
            if auth_call and resp.status_code in (400, 401, 403):
                raise AuthenticationError(message, resp.status_code)
            raise BackendError(message, resp.status_code)
        return resp

    def _json(self, resp: requests.Response) -> Any:
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise BackendError(f"Unexpected response from server: {e}", resp.status_code) from e

    def _rows(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        rows = self._json(self._request("GET", f"/rest/v1/{table}", params=params))
        if not isinstance(rows, list):
            raise BackendError(f"Unexpected response shape from {table}.")
        return rows

    # --- auth ---
    def _token_grant(self, grant_type: str, body: Dict[str, str]) -> Session:
        resp = self._request(
            "POST",
            "/auth/v1/token",
            auth_call=True,
            params={"grant_type": grant_type},
            json=body,
            headers={"Authorization": f"Bearer {self.anon_key}"},
        )
        session = _session_from_payload(self._json(resp) or {})
        self.active_session = session
        return session

    def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        session = self._token_grant("password", {"email": email, "password": password})
        logger.info("Signed in as %s", session.user.id)
        return AuthResult(user=session.user, session=session)

    def exchange_session_tokens(self, refresh_token: str) -> Session:
        session = self._token_grant("refresh_token", {"refresh_token": refresh_token})
        logger.info("Session restored for %s", session.user.id)
        return session

    def get_active_session(self) -> Optional[Session]:
        return self.active_session

    def set_active_session(self, session: Optional[Session]) -> None:
        self.active_session = session

    def sign_out(self) -> None:
        if not self.active_session:
            return
        try:
            self._request("POST", "/auth/v1/logout", auth_call=True)
        finally:
            self.active_session = None

    # --- profiles ---
    def get_profile(self, user_id: str) -> Profile:
        rows = self._rows(PROFILES_TABLE, {"select": PROFILE_COLUMNS, "id": f"eq.{user_id}"})
        if not rows:
            raise BackendError(f"No profile for user {user_id}.", 404)
        return Profile.from_row(rows[0])

    def update_profile(self, user_id: str, fields: Dict[str, Any]) -> None:
        body = dict(fields)
        body["id"] = user_id
        body["updated_at"] = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        self._request(
            "POST",
            f"/rest/v1/{PROFILES_TABLE}",
            json=body,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    # --- articles ---
    def get_articles_by_ids(self, ids: Iterable[str]) -> List[Article]:
        id_list = list(dict.fromkeys(ids))
        if not id_list:
            return []
        rows = self._rows(
            ARTICLES_TABLE,
            {
                "select": FAVORITE_SELECT,
                "id": f"in.({','.join(id_list)})",
                "is_published": "eq.true",
            },
        )
        return [Article.from_row(r) for r in rows]

    def list_published_articles(self, category: Optional[str] = None) -> List[Article]:
        params = {
            "select": FEED_SELECT,
            "is_published": "eq.true",
            "order": "published_at.desc",
        }
        if category:
            params["category"] = f"eq.{category}"
        rows = self._rows(ARTICLES_TABLE, params)
        logger.debug("Articles fetched: %d", len(rows))
        return [Article.from_row(r) for r in rows]

    def get_article_by_slug(self, slug: str) -> Article:
        rows = self._rows(
            ARTICLES_TABLE,
            {"select": FEED_SELECT, "slug": f"eq.{slug}", "is_published": "eq.true"},
        )
        if not rows:
            raise BackendError("Article not found or has been removed.", 404)
        return Article.from_row(rows[0])

    def increment_view_count(self, article: Article) -> None:
        self._request(
            "PATCH",
            f"/rest/v1/{ARTICLES_TABLE}",
            params={"id": f"eq.{article.id}"},
            json={"view_count": article.view_count + 1},
            headers={"Prefer": "return=minimal"},
        )
        article.view_count += 1

    # --- likes ---
    def is_liked(self, article_id: str, user_id: str) -> bool:
        rows = self._rows(
            LIKES_TABLE,
            {"select": "id", "article_id": f"eq.{article_id}", "user_id": f"eq.{user_id}"},
        )
        return bool(rows)

    def like(self, article_id: str, user_id: str) -> None:
        self._request(
            "POST",
            f"/rest/v1/{LIKES_TABLE}",
            json={"article_id": article_id, "user_id": user_id},
            headers={"Prefer": "return=minimal"},
        )

    def unlike(self, article_id: str, user_id: str) -> None:
        self._request(
            "DELETE",
            f"/rest/v1/{LIKES_TABLE}",
            params={"article_id": f"eq.{article_id}", "user_id": f"eq.{user_id}"},
        )

    def count_likes(self, article_id: str) -> int:
        resp = self._request(
            "GET",
            f"/rest/v1/{LIKES_TABLE}",
            params={"select": "id", "article_id": f"eq.{article_id}"},
            headers={"Prefer": "count=exact"},
        )
        content_range = resp.headers.get("Content-Range", "")
        if "/" in content_range:
            total = content_range.rsplit("/", 1)[1]
            if total.isdigit():
                return int(total)
        rows = self._json(resp)
        return len(rows) if isinstance(rows, list) else 0


def _session_from_payload(payload: Dict[str, Any]) -> Session:
    user_data = payload.get("user") or {}
    access = payload.get("access_token")
    refresh = payload.get("refresh_token")
    if not access or not refresh or not user_data.get("id"):
        raise BackendError("The server returned an incomplete session.")
    expires_at = payload.get("expires_at")
    if expires_at is None and payload.get("expires_in") is not None:
        expires_at = time.time() + float(payload["expires_in"])
    return Session(
        access_token=access,
        refresh_token=refresh,
        user=User(id=user_data["id"], email=user_data.get("email") or ""),
        expires_at=float(expires_at) if expires_at is not None else None,
    )


def _error_message(resp: requests.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(data, dict):
        for key in ("error_description", "msg", "message", "error"):
            if data.get(key):
                return str(data[key])
    return f"HTTP {resp.status_code}"
