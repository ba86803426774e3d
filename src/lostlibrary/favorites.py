from __future__ import annotations

import json
import logging
from typing import Dict, List

from .datamodels import Article, FavoriteList
from .errors import SchemaMismatch, StorageUnavailable
from .storage import DeviceStorage

logger = logging.getLogger("lostlibrary")

FAVORITES_KEY_PREFIX = "lostlibrary.favorites."


def favorites_key(user_id: str) -> str:
    return f"{FAVORITES_KEY_PREFIX}{user_id}"


class FavoritesStore:
    """Per-user ordered list of favorited article ids.

    Favorites live on this device only and are not synced through the
    backend.
    """

    def __init__(self, storage: DeviceStorage):
        self.storage = storage

    def _load(self, user_id: str) -> FavoriteList:
        raw = self.storage.get(favorites_key(user_id))
        if raw is None:
            return FavoriteList(user_id=user_id)
        try:
            record = json.loads(raw)
        except json.JSONDecodeError as e:
            raise SchemaMismatch(f"favorites for user {user_id} are not valid JSON") from e
        return FavoriteList.from_record(user_id, record)

    def _save(self, favorites: FavoriteList) -> None:
        self.storage.set(favorites_key(favorites.user_id), json.dumps(favorites.to_record()))

    def get_favorites(self, user_id: str) -> List[str]:
        try:
            return self._load(user_id).article_ids
        except (StorageUnavailable, SchemaMismatch) as e:
            logger.warning("Favorites unavailable for %s: %s", user_id, e)
            return []

    def is_favorite(self, user_id: str, article_id: str) -> bool:
        return article_id in self.get_favorites(user_id)

    def add_favorite(self, user_id: str, article_id: str) -> None:
        try:
            favorites = self._load(user_id)
        except SchemaMismatch as e:
            logger.warning("Replacing unreadable favorites for %s: %s", user_id, e)
            favorites = FavoriteList(user_id=user_id)
        except StorageUnavailable as e:
            logger.warning("Favorites unavailable, dropping add: %s", e)
            return
        if article_id in favorites.article_ids:
            return
        favorites.article_ids.append(article_id)
        try:
            self._save(favorites)
        except StorageUnavailable as e:
            logger.warning("Favorites unavailable, dropping add: %s", e)

    def remove_favorite(self, user_id: str, article_id: str) -> None:
        try:
            favorites = self._load(user_id)
            if article_id not in favorites.article_ids:
                return
            favorites.article_ids = [a for a in favorites.article_ids if a != article_id]
            self._save(favorites)
        except (StorageUnavailable, SchemaMismatch) as e:
            logger.warning("Favorites unavailable, dropping remove: %s", e)

    def toggle_favorite(self, user_id: str, article_id: str) -> bool:
        """Flip the favorite state and return the new one."""
        if self.is_favorite(user_id, article_id):
            self.remove_favorite(user_id, article_id)
            return False
        self.add_favorite(user_id, article_id)
        return True


def order_by_ids(article_ids: List[str], articles: List[Article]) -> List[Article]:
    """Re-order looked-up articles to match the stored id sequence.

    Ids with no matching article (deleted, unpublished) are skipped.
    """
    by_id: Dict[str, Article] = {a.id: a for a in articles}
    return [by_id[i] for i in article_ids if i in by_id]
