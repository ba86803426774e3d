from __future__ import annotations

import webbrowser
from typing import Any, Dict, List, Optional

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Vertical, VerticalScroll
from textual.screen import ModalScreen, Screen
from textual.worker import Worker, WorkerState
from textual.widgets import (
    Button,
    DataTable,
    Footer,
    Header,
    Input,
    Label,
    ListView,
    LoadingIndicator,
    Markdown,
    Static,
    TextArea,
)

from .auth import validate_credentials
from .config import SITE_NAME, logger
from .datamodels import Article, Profile, User
from .errors import BackendError, BackendUnavailable, ValidationError
from .favorites import order_by_ids
from .render import article_to_markdown, minutes_to_read
from .switcher import AccountSwitcher, SwitcherState
from .widgets import AccountItem, StatusBar


# --- Article screen ---
class ArticleViewScreen(Screen):
    BINDINGS = [
        Binding("escape,q,left", "app.pop_screen", "Back"),
        Binding("o", "open_in_browser", "Open in browser"),
        Binding("s", "share", "Share"),
        Binding("l", "toggle_like", "Like"),
        Binding("f", "toggle_favorite", "Favorite"),
        Binding("r", "reload_article", "Reload"),
        Binding("down", "scroll_down", "Scroll Down"),
        Binding("up", "scroll_up", "Scroll Up"),
    ]

    def __init__(self, article: Article):
        super().__init__()
        self.article = article
        self.like_count = 0
        self.liked = False
        self.like_pending = False

    def compose(self) -> ComposeResult:
        yield Header()
        yield StatusBar()
        yield LoadingIndicator(id="article-loading")
        yield VerticalScroll(Markdown("", id="article-markdown"), id="article-scroll")

    def on_mount(self) -> None:
        self.title = self.article.title
        self.query_one("#article-scroll").focus()
        self.load_article()
        keybinding_style = self.app.get_keybinding_style()
        self.query_one(StatusBar).set_keybindings(
            f"[b {keybinding_style}]l[/] like, [b {keybinding_style}]f[/] favorite, "
            f"[b {keybinding_style}]s[/] share, [b {keybinding_style}]o[/] open"
        )

    def load_article(self) -> None:
        self.query_one("#article-loading", LoadingIndicator).display = True
        self.query_one("#article-scroll").display = False
        user = self.app.current_user
        self.run_worker(
            lambda: self._fetch_article(user),
            name="article_loader",
            thread=True,
            exit_on_error=False,
        )

    def _fetch_article(self, user: Optional[User]) -> Dict[str, Any]:
        backend = self.app.backend
        article = backend.get_article_by_slug(self.article.slug)
        try:
            backend.increment_view_count(article)
        except BackendError as e:
            logger.warning("Could not update view count for %s: %s", article.id, e)
        likes = backend.count_likes(article.id)
        liked = backend.is_liked(article.id, user.id) if user else False
        return {"article": article, "likes": likes, "liked": liked}

    def _update_subtitle(self) -> None:
        content = self.article.content or ""
        label = "Like" if self.like_count == 1 else "Likes"
        heart = "♥" if self.liked else "♡"
        star = " ★" if self.article.favorited else ""
        self.sub_title = (
            f"~{minutes_to_read(content)} min read · {heart} {self.like_count} {label}{star}"
        )

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        name = getattr(event.worker, "name", None)
        if name == "article_loader":
            self._handle_article_loaded(event)
        elif name == "like_toggle" and event.state in (WorkerState.SUCCESS, WorkerState.ERROR):
            self._handle_like_toggled(event)

    def _handle_article_loaded(self, event: Worker.StateChanged) -> None:
        if event.state in (WorkerState.PENDING, WorkerState.RUNNING):
            return
        self.query_one("#article-loading", LoadingIndicator).display = False
        self.query_one("#article-scroll").display = True
        md = self.query_one("#article-markdown", Markdown)
        if event.state is WorkerState.SUCCESS:
            result = event.worker.result
            favorited = self.article.favorited
            self.article = result["article"]
            self.article.favorited = favorited
            self.like_count = result["likes"]
            self.liked = result["liked"]
            self.title = self.article.title
            md.update(article_to_markdown(self.article))
            self._update_subtitle()
            return
        error = getattr(event.worker, "error", None)
        logger.error("Article loader worker failed: %s", error)
        md.styles.color = "red"
        if isinstance(error, BackendError) and error.status == 404:
            md.update("# Article Not Found\n\nThe article you're looking for doesn't exist or has been removed.")
        else:
            md.update("**An error occurred while loading the article.** Press `r` to retry.")

    def _handle_like_toggled(self, event: Worker.StateChanged) -> None:
        self.like_pending = False
        if event.state is WorkerState.SUCCESS:
            self.liked = event.worker.result
            self.like_count = max(0, self.like_count + (1 if self.liked else -1))
            self._update_subtitle()
        else:
            logger.error("Error toggling like: %s", event.worker.error)
            self.app.notify(f"Could not update like: {event.worker.error}", severity="error")

    def action_toggle_like(self) -> None:
        user = self.app.current_user
        if user is None:
            self.app.action_sign_in()
            return
        if self.like_pending:
            return
        self.like_pending = True
        liked = self.liked
        article_id = self.article.id

        def _toggle() -> bool:
            if liked:
                self.app.backend.unlike(article_id, user.id)
                return False
            self.app.backend.like(article_id, user.id)
            return True

        self.run_worker(_toggle, name="like_toggle", thread=True, exit_on_error=False)

    def action_toggle_favorite(self) -> None:
        if self.app.toggle_favorite(self.article):
            self._update_subtitle()

    def action_share(self) -> None:
        self.app.copy_to_clipboard(self.article.url)
        self.app.notify(f"Link copied: {self.article.url}\n{self.article.share_description}")

    def action_open_in_browser(self) -> None:
        webbrowser.open(self.article.url)

    def action_reload_article(self) -> None:
        self.load_article()

    def action_scroll_down(self) -> None:
        self.query_one("#article-scroll").scroll_down()

    def action_scroll_up(self) -> None:
        self.query_one("#article-scroll").scroll_up()

    def refresh_identity(self, user: Optional[User]) -> None:
        self.load_article()


class ErrorScreen(Screen):
    BINDINGS = [Binding("q", "app.quit", "Quit")]

    def __init__(self, title: str, message: str):
        super().__init__()
        self.title = title
        self.message = message

    def compose(self) -> ComposeResult:
        yield Header()
        yield Label(self.title, classes="error-title")
        yield Markdown(self.message)
        yield Footer()


class FavoritesScreen(Screen):
    BINDINGS = [
        Binding("escape,q,left", "app.pop_screen", "Back"),
        Binding("d", "delete_favorite", "Delete"),
        Binding("r", "reload", "Reload"),
    ]

    def __init__(self) -> None:
        super().__init__()
        self.articles: List[Article] = []

    def compose(self) -> ComposeResult:
        yield Header()
        yield Footer()
        yield Static("", id="favorites-empty")
        yield DataTable(id="favorites-table")

    def on_mount(self) -> None:
        self.title = "Favorite Articles"
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.add_column("Title", key="title")
        table.add_column("Published", key="published")
        self.load_favorites()

    def load_favorites(self) -> None:
        table = self.query_one(DataTable)
        table.clear()
        user = self.app.current_user
        if user is None:
            self._show_empty("Sign in to see your favorite articles.")
            return
        ids = self.app.favorites.get_favorites(user.id)
        if not ids:
            self._show_empty("No favorite articles yet. Press f on an article to add one.")
            return
        self._show_empty("Loading favorites...")
        self.run_worker(
            lambda: order_by_ids(ids, self.app.backend.get_articles_by_ids(ids)),
            name="favorites_loader",
            thread=True,
            exit_on_error=False,
        )

    def _show_empty(self, text: str) -> None:
        empty = self.query_one("#favorites-empty", Static)
        empty.update(text)
        empty.display = bool(text)

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        if getattr(event.worker, "name", None) != "favorites_loader":
            return
        if event.state is WorkerState.SUCCESS:
            self.articles = event.worker.result or []
            table = self.query_one(DataTable)
            table.clear()
            for article in self.articles:
                article.favorited = True
                table.add_row(article.title, article.published_date, key=article.id)
            self._show_empty("" if self.articles else "No favorite articles found.")
        elif event.state is WorkerState.ERROR:
            logger.error("Error fetching favorite articles: %s", event.worker.error)
            self._show_empty("Failed to load favorite articles")

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        article_id = str(event.row_key.value)
        for article in self.articles:
            if article.id == article_id:
                self.app.push_screen(ArticleViewScreen(article))
                return

    def action_delete_favorite(self) -> None:
        """Delete the selected favorite."""
        user = self.app.current_user
        table = self.query_one(DataTable)
        if user is None or not table.is_valid_row_index(table.cursor_row):
            return

        row_key = table.get_row_key(table.cursor_row)
        article_id = str(row_key.value)
        self.app.favorites.remove_favorite(user.id, article_id)
        self.articles = [a for a in self.articles if a.id != article_id]
        table.remove_row(row_key)
        self.app.notify("Favorite removed.")
        self.app.refresh_favorite_marks()

    def action_reload(self) -> None:
        self.load_favorites()

    def refresh_identity(self, user: Optional[User]) -> None:
        self.load_favorites()


class SignInScreen(ModalScreen[Optional[User]]):
    """Credential prompt. With a switcher it finishes an account switch."""

    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def __init__(
        self,
        prefill_email: Optional[str] = None,
        switcher: Optional[AccountSwitcher] = None,
        error: Optional[str] = None,
    ):
        super().__init__()
        self.prefill_email = prefill_email
        self.switcher = switcher
        self.initial_error = error

    @property
    def is_account_switch(self) -> bool:
        return self.switcher is not None and bool(self.prefill_email)

    def compose(self) -> ComposeResult:
        title = (
            f"Sign in to switch to {self.prefill_email}"
            if self.is_account_switch
            else f"Sign in to {SITE_NAME}"
        )
        with Vertical(id="signin-dialog"):
            yield Label(title, id="signin-title")
            yield Input(
                value=self.prefill_email or "",
                placeholder="Email",
                id="signin-email",
                disabled=self.is_account_switch,
            )
            yield Input(placeholder="Password", password=True, id="signin-password")
            yield Label("", id="signin-error")
            yield Button(
                "Switch Account" if self.is_account_switch else "Sign In",
                id="signin-submit",
                variant="primary",
            )

    def on_mount(self) -> None:
        if self.is_account_switch:
            self.query_one("#signin-password", Input).focus()
        else:
            self.query_one("#signin-email", Input).focus()
        if self.initial_error:
            self._show_error(self.initial_error)

    def _show_error(self, message: str) -> None:
        if self.is_account_switch:
            message = f"{message}\nPlease enter the password for this account"
        self.query_one("#signin-error", Label).update(message)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "signin-email":
            self.query_one("#signin-password", Input).focus()
        else:
            self.submit()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "signin-submit":
            self.submit()

    def submit(self) -> None:
        email = self.query_one("#signin-email", Input).value
        password = self.query_one("#signin-password", Input).value
        try:
            validate_credentials(email, password)
        except ValidationError as e:
            self._show_error(str(e))
            return

        button = self.query_one("#signin-submit", Button)
        button.disabled = True
        button.label = "Signing in..."
        self.run_worker(
            lambda: self._sign_in(email, password),
            name="sign_in",
            thread=True,
            exit_on_error=False,
        )

    def _sign_in(self, email: str, password: str) -> Optional[User]:
        if self.switcher is not None:
            state = self.switcher.submit_password(password)
            if state is SwitcherState.ACTIVE:
                return self.app.current_user
            raise ValidationError(self.switcher.error or "Failed to sign in")
        return self.app.auth.sign_in(email, password)

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        if getattr(event.worker, "name", None) != "sign_in":
            return
        if event.state is WorkerState.SUCCESS:
            self.dismiss(event.worker.result)
        elif event.state is WorkerState.ERROR:
            error = event.worker.error
            logger.error("Sign in error: %s", error)
            button = self.query_one("#signin-submit", Button)
            button.disabled = False
            button.label = "Switch Account" if self.is_account_switch else "Sign In"
            self._show_error(str(error) or "Failed to sign in")

    def action_cancel(self) -> None:
        if self.switcher is not None:
            self.switcher.cancel()
        self.dismiss(None)


class AccountSwitcherScreen(ModalScreen[Optional[User]]):
    BINDINGS = [
        Binding("escape", "cancel", "Close"),
        Binding("x", "remove_account", "Remove from device"),
    ]

    def __init__(self, switcher: AccountSwitcher):
        super().__init__()
        self.switcher = switcher

    def compose(self) -> ComposeResult:
        with Vertical(id="switcher-dialog"):
            yield Label("Switch account", id="switcher-title")
            yield ListView(id="accounts-list")
            yield Label("", id="switcher-status")
            yield Footer()

    def on_mount(self) -> None:
        self.populate()
        self.query_one("#accounts-list", ListView).focus()

    def populate(self) -> None:
        accounts = self.switcher.open()
        current = self.app.current_user
        view = self.query_one("#accounts-list", ListView)
        view.clear()
        for account in accounts:
            view.append(AccountItem(account, current=bool(current and current.id == account.id)))
        if not accounts:
            self.query_one("#switcher-status", Label).update(
                "No accounts on this device yet. Sign in to add one."
            )

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        if not isinstance(event.item, AccountItem) or self.switcher.busy:
            return
        account = event.item.account
        current = self.app.current_user
        if current and current.id == account.id:
            self.switcher.cancel()
            self.dismiss(current)
            return
        self.query_one("#accounts-list", ListView).disabled = True
        self.query_one("#switcher-status", Label).update(
            f"Switching to {account.display_name}..."
        )
        self.run_worker(
            lambda: self.switcher.choose(account.id),
            name="account_switch",
            thread=True,
            exit_on_error=False,
        )

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        if getattr(event.worker, "name", None) != "account_switch":
            return
        if event.state is WorkerState.ERROR:
            logger.error("Account switch failed: %s", event.worker.error)
            self.query_one("#accounts-list", ListView).disabled = False
            self.query_one("#switcher-status", Label).update(f"Switch failed: {event.worker.error}")
            return
        if event.state is not WorkerState.SUCCESS:
            return
        state = event.worker.result
        if state is SwitcherState.ACTIVE:
            self.dismiss(self.app.current_user)
        elif state is SwitcherState.PROMPTING_PASSWORD:
            self.app.push_screen(
                SignInScreen(
                    prefill_email=self.switcher.prefill_email,
                    switcher=self.switcher,
                    error=self.switcher.error,
                ),
                self._on_prompt_closed,
            )

    def _on_prompt_closed(self, user: Optional[User]) -> None:
        self.dismiss(user)

    def action_remove_account(self) -> None:
        if self.switcher.busy:
            return
        view = self.query_one("#accounts-list", ListView)
        item = view.highlighted_child
        if not isinstance(item, AccountItem):
            return
        current = self.app.current_user
        if current and current.id == item.account.id:
            self.app.notify("Sign out before removing the current account.", severity="warning")
            return
        self.app.accounts.remove_account(item.account.id)
        self.app.notify(f"Removed {item.account.display_name} from this device.")
        self.switcher.cancel()
        self.populate()

    def action_cancel(self) -> None:
        self.switcher.cancel()
        self.dismiss(None)


class ProfileScreen(Screen):
    """View and edit the signed-in user's profile."""

    BINDINGS = [
        Binding("escape", "app.pop_screen", "Back"),
        Binding("ctrl+s", "save_profile", "Save"),
    ]

    def compose(self) -> ComposeResult:
        yield Header()
        yield Footer()
        with Vertical(id="profile-form"):
            yield Label("", id="profile-email")
            yield Label("Username", classes="settings-label")
            yield Input(id="profile-username")
            yield Label("Full Name", classes="settings-label")
            yield Input(id="profile-full-name")
            yield Label("Bio", classes="settings-label")
            yield TextArea(id="profile-bio")
            yield Label("Website", classes="settings-label")
            yield Input(placeholder="https://", id="profile-website")
            yield Label("", id="profile-message")
            yield Button("Save Changes", id="save-profile", classes="settings-button")

    def on_mount(self) -> None:
        self.title = "Profile"
        self.load_profile()

    def load_profile(self) -> None:
        user = self.app.current_user
        if user is None:
            self._set_message("Sign in to manage your profile.", error=True)
            self.query_one("#save-profile", Button).disabled = True
            return
        self.query_one("#profile-email", Label).update(user.email)
        self.query_one("#save-profile", Button).disabled = False
        self.run_worker(
            lambda: self.app.backend.get_profile(user.id),
            name="profile_loader",
            thread=True,
            exit_on_error=False,
        )

    def _set_message(self, text: str, error: bool = False) -> None:
        message = self.query_one("#profile-message", Label)
        message.update(text)
        message.set_class(error, "error")

    def _form_profile(self, user_id: str) -> Profile:
        return Profile(
            id=user_id,
            username=self.query_one("#profile-username", Input).value.strip(),
            full_name=self.query_one("#profile-full-name", Input).value.strip(),
            bio=self.query_one("#profile-bio", TextArea).text.strip(),
            website=self.query_one("#profile-website", Input).value.strip(),
        )

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        name = getattr(event.worker, "name", None)
        if name == "profile_loader":
            if event.state is WorkerState.SUCCESS:
                profile: Profile = event.worker.result
                self.query_one("#profile-username", Input).value = profile.username or ""
                self.query_one("#profile-full-name", Input).value = profile.full_name or ""
                self.query_one("#profile-bio", TextArea).text = profile.bio or ""
                self.query_one("#profile-website", Input).value = profile.website or ""
                self._set_message("")
            elif event.state is WorkerState.ERROR:
                logger.error("Error loading profile: %s", event.worker.error)
                self._set_message(f"Error loading profile: {event.worker.error}", error=True)
        elif name == "profile_saver":
            button = self.query_one("#save-profile", Button)
            if event.state is WorkerState.SUCCESS:
                button.disabled = False
                button.label = "Save Changes"
                self._set_message("Profile updated successfully!")
            elif event.state is WorkerState.ERROR:
                button.disabled = False
                button.label = "Save Changes"
                error = event.worker.error
                if isinstance(error, BackendUnavailable):
                    self._set_message(f"{error} Try again.", error=True)
                else:
                    self._set_message(str(error), error=True)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "save-profile":
            self.action_save_profile()

    def action_save_profile(self) -> None:
        user = self.app.current_user
        if user is None:
            return
        profile = self._form_profile(user.id)
        button = self.query_one("#save-profile", Button)
        button.disabled = True
        button.label = "Saving..."

        def _save() -> Profile:
            self.app.backend.update_profile(
                user.id,
                {
                    "username": profile.username,
                    "full_name": profile.full_name,
                    "bio": profile.bio,
                    "website": profile.website,
                },
            )
            self.app.auth.refresh_account_display(user.id, profile)
            return profile

        self.run_worker(_save, name="profile_saver", thread=True, exit_on_error=False)

    def refresh_identity(self, user: Optional[User]) -> None:
        self.load_profile()
