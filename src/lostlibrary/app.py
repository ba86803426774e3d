from __future__ import annotations

from typing import Any, List, Optional

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.worker import Worker, WorkerState
from textual.widgets import (
    Header,
    Input,
    ListView,
    Static,
    LoadingIndicator,
    Rule,
)

from .accounts import AccountStore
from .auth import AuthService
from .backend.base import Backend
from .config import CATEGORIES, SITE_NAME, UI_DEFAULTS, logger, save_config
from .datamodels import Article, User
from .favorites import FavoritesStore
from .identity import IdentityBus
from .messages import IdentityChanged
from .screens import (
    AccountSwitcherScreen,
    ArticleViewScreen,
    ErrorScreen,
    FavoritesScreen,
    ProfileScreen,
    SignInScreen,
)
from .sessions import SessionManager
from .storage import DeviceStorage
from .switcher import AccountSwitcher
from .widgets import ArticleItem, CategoryListItem, ErrorMessage, StatusBar


class LostLibraryApp(App):
    TITLE = SITE_NAME
    SUB_TITLE = "History articles from the community"

    CSS_PATH = "app.css"

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("r", "refresh", "Refresh"),
        Binding("f", "favorite", "Favorite"),
        Binding("F", "show_favorites", "Favorites"),
        Binding("a", "switch_account", "Accounts"),
        Binding("i", "sign_in", "Sign In"),
        Binding("o", "sign_out", "Sign Out"),
        Binding("p", "show_profile", "Profile"),
        Binding("left", "nav_left", "Navigate Left"),
        Binding("right", "nav_right", "Navigate Right"),
        Binding("ctrl+l", "toggle_left_pane", "Toggle Categories"),
        Binding("/", "focus_filter", "Search"),
    ]

    def __init__(
        self,
        backend: Optional[Backend],
        storage: DeviceStorage,
        theme: Optional[str] = None,
        config: Optional[dict[str, Any]] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self._theme_name = theme or "dracula"
        self.config = config or {}
        self.backend = backend
        self.identity = IdentityBus()
        self.accounts = AccountStore(storage)
        self.favorites = FavoritesStore(storage)
        self.sessions = SessionManager(backend, self.accounts) if backend else None
        self.auth = (
            AuthService(backend, self.accounts, self.sessions, self.identity)
            if backend
            else None
        )
        self.switcher = (
            AccountSwitcher(self.accounts, self.sessions, self.auth, self.identity)
            if backend
            else None
        )
        self.current_category: Optional[str] = None
        self.articles: List[Article] = []

    @property
    def current_user(self) -> Optional[User]:
        return self.identity.current

    @property
    def main_screen(self):
        """The feed screen, whatever is pushed on top of it."""
        return self.screen_stack[0]

    def get_keybinding_style(self) -> str:
        return "$accent"

    def compose(self) -> ComposeResult:
        yield Header()
        # Main horizontal split: left = categories, right = articles
        with Horizontal(id="main"):
            with Vertical(id="left"):
                yield Static("Categories", classes="pane-title")
                yield ListView(id="categories-list")
            yield Rule(orientation="vertical")
            with Vertical(id="right"):
                yield Static("Community Feed", classes="pane-title")
                yield Input(placeholder="Filter articles...", id="article-filter")
                yield ListView(id="articles-list")
        yield StatusBar()

    def on_mount(self) -> None:
        if self._theme_name not in self.available_themes:
            logger.warning("Theme '%s' not found, falling back to dracula.", self._theme_name)
            self._theme_name = "dracula"
        self.theme = self._theme_name

        if self.backend is None:
            self.push_screen(
                ErrorScreen(
                    "Backend not configured",
                    "Set `SUPABASE_URL` and `SUPABASE_ANON_KEY`, or fill the "
                    "`supabase` section of `~/.config/lostlibrary/config.json`.",
                )
            )
            return

        self.identity.subscribe(self._on_identity_published)

        categories = self.main_screen.query_one("#categories-list", ListView)
        categories.append(CategoryListItem(None, "All Categories"))
        for slug, label in CATEGORIES.items():
            categories.append(CategoryListItem(slug, label))
        categories.focus()

        keybindings_text = self.config.get("ui", {}).get(
            "statusbar_keybindings", UI_DEFAULTS["statusbar_keybindings"]
        )
        self.main_screen.query_one(StatusBar).set_keybindings(
            keybindings_text.format(color=self.get_keybinding_style())
        )
        self._update_identity_status()

        self.run_worker(self.auth.resume, name="session_resume", thread=True, exit_on_error=False)
        self._load_articles(None)

    def watch_theme(self, old_theme: str, new_theme: str) -> None:
        """Remember a theme picked from the command palette."""
        if not getattr(self, "config", None) or new_theme == getattr(self, "_theme_name", None):
            return
        self._theme_name = new_theme
        self.config["theme"] = new_theme
        save_config(self.config)

    def on_unmount(self) -> None:
        self.identity.unsubscribe(self._on_identity_published)

    # --- identity ---
    def _on_identity_published(self, user: Optional[User]) -> None:
        # May be called from a worker thread; post_message is thread-safe.
        self.post_message(IdentityChanged(user))

    def on_identity_changed(self, message: IdentityChanged) -> None:
        self._update_identity_status()
        self.refresh_favorite_marks()
        for screen in self.screen_stack:
            refresh = getattr(screen, "refresh_identity", None)
            if refresh is not None:
                refresh(message.user)

    def _update_identity_status(self) -> None:
        user = self.current_user
        status = self.main_screen.query_one(StatusBar)
        status.identity = f"Signed in as {user.email}" if user else "Not signed in"

    # --- feed ---
    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        name = getattr(event.worker, "name", None)
        if name == "articles_loader" and event.state is WorkerState.SUCCESS:
            self._handle_articles_loaded(event)
        elif name == "articles_loader" and event.state is WorkerState.ERROR:
            self._handle_articles_error(event)
        elif name == "session_resume" and event.state is WorkerState.ERROR:
            logger.error("Session resume failed: %s", event.worker.error)
        elif name == "sign_out" and event.state is WorkerState.SUCCESS:
            self.notify("Signed out.")

    def _load_articles(self, category: Optional[str]) -> None:
        self.current_category = category
        title = CATEGORIES.get(category, "All Categories") if category else "All Categories"
        self.main_screen.query_one(StatusBar).loading_status = f"Loading {title}..."
        self.main_screen.query_one("#article-filter", Input).value = ""
        articles_list = self.main_screen.query_one("#articles-list", ListView)
        articles_list.clear()
        articles_list.mount(LoadingIndicator())
        self.run_worker(
            lambda: self.backend.list_published_articles(category),
            name="articles_loader",
            thread=True,
            exit_on_error=False,
        )

    def _handle_articles_loaded(self, event: Worker.StateChanged) -> None:
        self.main_screen.query_one(StatusBar).loading_status = ""
        self.articles = event.worker.result or []
        self.refresh_favorite_marks()

    def _handle_articles_error(self, event: Worker.StateChanged) -> None:
        self.main_screen.query_one(StatusBar).loading_status = "Error loading articles."
        articles_list = self.main_screen.query_one("#articles-list", ListView)
        articles_list.clear()
        error = getattr(event.worker, "error", None)
        logger.error("Error fetching articles: %s", error)
        articles_list.mount(ErrorMessage(f"Failed to load articles: {error}. Press r to retry."))

    def _update_articles_list(self, articles: List[Article]) -> None:
        articles_list = self.main_screen.query_one("#articles-list", ListView)
        articles_list.clear()
        if not articles:
            articles_list.mount(Static("No articles found in this category."))
            return
        for article in articles:
            articles_list.append(ArticleItem(article))

    def refresh_favorite_marks(self) -> None:
        user = self.current_user
        favorite_ids = set(self.favorites.get_favorites(user.id)) if user else set()
        for article in self.articles:
            article.favorited = article.id in favorite_ids
        self._apply_filter()

    def _apply_filter(self) -> None:
        query = self.main_screen.query_one("#article-filter", Input).value.strip().lower()
        if not query:
            self._update_articles_list(self.articles)
            return
        self._update_articles_list(
            [
                a
                for a in self.articles
                if query in a.title.lower() or query in a.author_name.lower()
            ]
        )

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        if event.list_view.id == "categories-list":
            if isinstance(event.item, CategoryListItem):
                self._load_articles(event.item.slug)
        elif event.list_view.id == "articles-list":
            if isinstance(event.item, ArticleItem):
                self.push_screen(ArticleViewScreen(event.item.article))

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "article-filter":
            self._apply_filter()

    def on_input_blur(self, event: Input.Blur) -> None:
        if event.input.id == "article-filter" and not event.input.value:
            event.input.display = False

    # --- favorites ---
    def toggle_favorite(self, article: Article) -> bool:
        """Flip the favorite state of an article for the current user."""
        user = self.current_user
        if user is None:
            self.action_sign_in()
            return False
        article.favorited = self.favorites.toggle_favorite(user.id, article.id)
        self.notify("Added to favorites." if article.favorited else "Removed from favorites.")
        self.refresh_favorite_marks()
        return True

    def action_favorite(self) -> None:
        articles_list = self.main_screen.query_one("#articles-list", ListView)
        item = articles_list.highlighted_child
        if isinstance(item, ArticleItem):
            self.toggle_favorite(item.article)

    def action_show_favorites(self) -> None:
        if self.backend is None:
            return
        self.push_screen(FavoritesScreen())

    # --- accounts ---
    def action_sign_in(self) -> None:
        if self.auth is None:
            return
        self.push_screen(SignInScreen(), self._on_signed_in)

    def _on_signed_in(self, user: Optional[User]) -> None:
        if user is not None:
            self.notify(f"Signed in as {user.email}.")

    def action_sign_out(self) -> None:
        if self.auth is None or self.current_user is None:
            return
        self.run_worker(self.auth.sign_out, name="sign_out", thread=True, exit_on_error=False)

    def action_switch_account(self) -> None:
        if self.switcher is None or isinstance(self.screen, AccountSwitcherScreen):
            return
        self.switcher.cancel()
        self.push_screen(AccountSwitcherScreen(self.switcher), self._on_account_switched)

    def _on_account_switched(self, user: Optional[User]) -> None:
        if user is not None:
            self.notify(f"Now signed in as {user.email}.")

    def action_show_profile(self) -> None:
        if self.auth is None:
            return
        if self.current_user is None:
            self.action_sign_in()
            return
        self.push_screen(ProfileScreen())

    # --- navigation ---
    def action_refresh(self) -> None:
        if self.backend is not None:
            self._load_articles(self.current_category)

    def action_nav_left(self) -> None:
        if self.main_screen.query_one("#articles-list").has_focus:
            self.main_screen.query_one("#categories-list").focus()

    def action_nav_right(self) -> None:
        articles_list = self.main_screen.query_one("#articles-list", ListView)
        if articles_list.has_focus:
            item = articles_list.highlighted_child
            if isinstance(item, ArticleItem):
                self.push_screen(ArticleViewScreen(item.article))
        elif self.main_screen.query_one("#categories-list").has_focus:
            articles_list.focus()

    def action_toggle_left_pane(self) -> None:
        """Toggle the left pane."""
        left_pane = self.main_screen.query_one("#left")
        left_pane.display = not left_pane.display

    def action_focus_filter(self) -> None:
        """Focus the filter input."""
        filter_input = self.main_screen.query_one("#article-filter")
        filter_input.display = True
        filter_input.focus()
