from __future__ import annotations

from typing import Optional

from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.reactive import reactive
from textual.widgets import ListItem, Static
from rich.text import Text

from .datamodels import Article, StoredAccount


# --- UI Widgets ---
class CategoryListItem(ListItem):
    def __init__(self, slug: Optional[str], label: str):
        super().__init__()
        self.slug = slug
        self.label = label

    def compose(self) -> ComposeResult:
        yield Static(self.label)


class ArticleItem(ListItem):
    def __init__(self, article: Article):
        super().__init__()
        self.article = article

    def compose(self) -> ComposeResult:
        with Horizontal(classes="article-container"):
            yield Static("★" if self.article.favorited else " ", classes="article-favorite")
            yield Static(self.article.title, classes="article-title")
            yield Static(self.article.author_name, classes="article-author")
            yield Static(self.article.published_date, classes="article-date")
            yield Static(str(self.article.view_count), classes="article-views")


class AccountItem(ListItem):
    def __init__(self, account: StoredAccount, current: bool = False):
        super().__init__()
        self.account = account
        self.current = current

    def compose(self) -> ComposeResult:
        marker = "●" if self.current else " "
        with Horizontal(classes="account-container"):
            yield Static(marker, classes="account-marker")
            yield Static(self.account.display_name, classes="account-name")
            yield Static(self.account.email or "", classes="account-email")


class StatusBar(Static):
    loading_status = reactive("")
    identity = reactive("")
    keybinding_hint = reactive("")

    def on_mount(self) -> None:
        self.update_display()

    def set_keybindings(self, hint: str) -> None:
        """Set the keybinding hint text."""
        self.keybinding_hint = hint

    def update_display(self) -> None:
        """Update the status bar display."""
        status_items = []
        if self.loading_status:
            status_items.append(self.loading_status)

        if self.identity:
            status_items.append(self.identity)

        if self.keybinding_hint:
            status_items.append(self.keybinding_hint)

        self.update(" | ".join(status_items))

    def watch_loading_status(self, loading_status: str) -> None:
        self.update_display()

    def watch_identity(self, identity: str) -> None:
        self.update_display()

    def watch_keybinding_hint(self, keybinding_hint: str) -> None:
        self.update_display()


class ErrorMessage(Static):
    def __init__(self, message: str):
        super().__init__(Text(message, style="bold red"))
