from __future__ import annotations

from typing import Optional

from textual.message import Message

from .datamodels import User


class IdentityChanged(Message):
    """The signed-in identity changed; identity-scoped views should re-fetch."""
    def __init__(self, user: Optional[User]) -> None:
        self.user = user
        super().__init__()
