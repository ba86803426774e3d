from __future__ import annotations

import logging
from typing import Callable, List, Optional

from .datamodels import User

logger = logging.getLogger("lostlibrary")

IdentityListener = Callable[[Optional[User]], None]


class IdentityBus:
    """Tells subscribers when the signed-in identity changes.

    Views that hold identity-scoped data (profile, favorites, like state)
    subscribe and re-fetch on each event.
    """

    def __init__(self) -> None:
        self._listeners: List[IdentityListener] = []
        self.current: Optional[User] = None

    def subscribe(self, listener: IdentityListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: IdentityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(self, user: Optional[User]) -> None:
        self.current = user
        logger.info("Identity changed to %s", user.id if user else "signed out")
        for listener in list(self._listeners):
            try:
                listener(user)
            except Exception:
                logger.exception("Identity listener %r failed", listener)
