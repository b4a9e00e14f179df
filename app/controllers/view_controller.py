import logging
import threading
import time
from enum import Enum
from typing import Callable, Dict, List, Optional

from app.core.exceptions import FeedError, GatewayError
from app.models.post import ALL_CATEGORIES, DEFAULT_CATEGORY, Category, Post
from app.services.feed_service import FeedGateway, Subscription
from app.services.provider import AuthUser
from app.views import templates
from app.views.formatter import signup_error

logger = logging.getLogger(__name__)

FEED_ERROR = "Error loading posts. Please try refreshing the page."


class ViewState(str, Enum):
    LOADING = "loading"
    LOGIN = "login"
    SIGNUP = "signup"
    DASHBOARD = "dashboard"


class DashboardSession:
    """State owned by one rendering of the dashboard.

    Holds the two live subscriptions (posts, categories). It is created when
    the user lands on the dashboard and must be disposed when they leave it;
    ``dispose()`` releases both subscriptions.
    """

    def __init__(self, gateway: FeedGateway, user: AuthUser, lock, on_update: Callable[[], None]):
        self.gateway = gateway
        self.user = user
        self._lock = lock
        self._on_update = on_update
        self.selected_category = ALL_CATEGORIES
        self.posts: Optional[List[Post]] = None
        self.categories: List[Category] = []
        self.posts_subscription: Optional[Subscription] = None
        self.categories_subscription: Optional[Subscription] = None
        self.feed_error: Optional[str] = None
        self.post_error: Optional[str] = None
        self.post_success: Optional[str] = None
        self.category_error: Optional[str] = None
        self.disposed = False
        # Bumped on every posts re-subscription so late snapshots from a released query are dropped.
        self._posts_generation = 0

    @property
    def post_label(self) -> str:
        if self.selected_category == ALL_CATEGORIES:
            return "What's on your mind?"
        return f"Share in {self.selected_category}"

    @property
    def post_category(self) -> str:
        if self.selected_category == ALL_CATEGORIES:
            return DEFAULT_CATEGORY
        return self.selected_category

    @property
    def active_subscriptions(self) -> List[Subscription]:
        return [
            sub for sub in (self.posts_subscription, self.categories_subscription)
            if sub is not None and sub.active
        ]

    def open(self) -> None:
        try:
            self._subscribe_posts()
            self._subscribe_categories()
        except FeedError:
            logger.exception("Error initializing feed")
            with self._lock:
                self.feed_error = FEED_ERROR

    def _subscribe_posts(self) -> None:
        with self._lock:
            self._posts_generation += 1
            generation = self._posts_generation
            category = self.selected_category
        subscription = self.gateway.subscribe_to_posts(
            lambda posts: self._on_posts(generation, posts),
            category=category,
        )
        with self._lock:
            if not self.disposed and generation == self._posts_generation:
                self.posts_subscription = subscription
                return
        # Superseded by a later category switch or by dispose() while opening.
        subscription.unsubscribe()

    def _subscribe_categories(self) -> None:
        subscription = self.gateway.subscribe_to_categories(self._on_categories)
        with self._lock:
            if not self.disposed:
                self.categories_subscription = subscription
                return
        subscription.unsubscribe()

    def _on_posts(self, generation: int, posts: List[Post]) -> None:
        with self._lock:
            if self.disposed or generation != self._posts_generation:
                return
            self.posts = posts
        self._on_update()

    def _on_categories(self, categories: List[Category]) -> None:
        with self._lock:
            if self.disposed:
                return
            self.categories = categories
        self._on_update()

    def select_category(self, name: str) -> None:
        with self._lock:
            self.selected_category = name or ALL_CATEGORIES
        self.refresh_feed()

    def refresh_feed(self) -> None:
        """Replace the posts subscription; also retries categories if they never opened."""
        with self._lock:
            stale = self.posts_subscription
            self.posts_subscription = None
            self.posts = None
            self.feed_error = None
            retry_categories = self.categories_subscription is None
            self._posts_generation += 1
        # Released outside the lock: a Firestore unsubscribe joins the watch thread.
        if stale:
            stale.unsubscribe()
        try:
            self._subscribe_posts()
            if retry_categories:
                self._subscribe_categories()
        except FeedError:
            logger.exception("Error refreshing feed")
            with self._lock:
                self.feed_error = FEED_ERROR

    def dispose(self) -> None:
        with self._lock:
            self.disposed = True
            subscriptions = [
                sub for sub in (self.posts_subscription, self.categories_subscription) if sub
            ]
            self.posts_subscription = None
            self.categories_subscription = None
        for subscription in subscriptions:
            subscription.unsubscribe()
        logger.debug("Disposed dashboard session for %s", self.user.uid)

    def posts_html(self) -> str:
        if self.feed_error:
            return templates.render_feed_error(self.feed_error)
        return templates.render_posts(self.posts)

    def categories_html(self) -> str:
        return templates.render_categories(self.categories, self.selected_category)


class ViewController:
    """Chooses which view a browser session sees and wires its actions.

    Transitions come from two places only: the provider's auth-state signal
    (signed in -> dashboard, signed out -> login) and the login/signup
    navigation buttons. Leaving the dashboard always disposes its session
    before the view changes.
    """

    def __init__(self, gateway: FeedGateway):
        self.gateway = gateway
        self.state = ViewState.LOADING
        self.session: Optional[DashboardSession] = None
        self.login_error: Optional[str] = None
        self.signup_error: Optional[str] = None
        self.form_email = ""
        self.last_seen = time.monotonic()
        self._lock = threading.RLock()
        self._listeners: List[Callable[[], None]] = []

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self.gateway.current_user

    def start(self) -> None:
        self.gateway.watch_auth_state(self._on_auth_state_changed)

    def touch(self) -> None:
        self.last_seen = time.monotonic()

    # ---- Change listeners -----------------------------------------------------
    def add_listener(self, listener: Callable[[], None]) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[], None]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @property
    def has_listeners(self) -> bool:
        return bool(self._listeners)

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener()

    # ---- Transitions ----------------------------------------------------------
    def _on_auth_state_changed(self, user: Optional[AuthUser]) -> None:
        with self._lock:
            stale = self._detach_session()
            session = None
            if user is not None:
                self.login_error = None
                self.signup_error = None
                self.form_email = ""
                session = DashboardSession(self.gateway, user, self._lock, self._notify)
                self.session = session
                self.state = ViewState.DASHBOARD
            else:
                self.state = ViewState.LOGIN
        # Subscriptions are released and opened without holding the lock.
        if stale is not None:
            stale.dispose()
        if session is not None:
            session.open()
            logger.info("Dashboard opened for %s", user.uid)
        self._notify()

    def _detach_session(self) -> Optional[DashboardSession]:
        session, self.session = self.session, None
        return session

    def show_signup(self) -> None:
        with self._lock:
            if self.state in (ViewState.LOGIN, ViewState.SIGNUP):
                self.state = ViewState.SIGNUP
                self.signup_error = None

    def show_login(self) -> None:
        with self._lock:
            if self.state in (ViewState.LOGIN, ViewState.SIGNUP):
                self.state = ViewState.LOGIN
                self.login_error = None

    # ---- Actions --------------------------------------------------------------
    def submit_login(self, email: str, password: str) -> bool:
        email = (email or "").strip()
        with self._lock:
            self.login_error = None
            self.form_email = email
        try:
            self.gateway.authenticate(email, password or "")
        except FeedError as e:
            with self._lock:
                self.login_error = e.message
            return False
        return True

    def submit_signup(self, email: str, password: str, confirm_password: str) -> bool:
        email = (email or "").strip()
        password = password or ""
        with self._lock:
            self.form_email = email
            self.signup_error = signup_error(email, password, confirm_password or "")
            if self.signup_error:
                return False
        try:
            self.gateway.register(email, password)
        except FeedError as e:
            with self._lock:
                self.signup_error = e.message
            return False
        return True

    def submit_post(self, content: str) -> bool:
        with self._lock:
            session = self.session
            if session is None:
                return False
            session.post_error = None
            session.post_success = None
            content = (content or "").strip()
            if not content:
                session.post_error = "Please enter some content to post"
                return False
            category = session.post_category
        try:
            self.gateway.create_post(content, category)
        except FeedError as e:
            session.post_error = e.message
            return False
        session.post_success = "Post created successfully!"
        return True

    def add_category(self, name: str) -> bool:
        name = (name or "").strip()
        with self._lock:
            session = self.session
            if session is None or not name:
                return False
            session.category_error = None
        try:
            self.gateway.create_category(name)
        except FeedError as e:
            logger.error("Error creating category: %s", e.message)
            session.category_error = f"Failed to create category: {e.message}"
            return False
        return True

    def select_category(self, name: str) -> None:
        with self._lock:
            session = self.session
        if session is None:
            return
        session.select_category(name)
        self._notify()

    def logout(self) -> None:
        try:
            self.gateway.logout()
        except GatewayError:
            logger.exception("Logout error")
            # Leave the dashboard even if the provider could not sign out.
            with self._lock:
                stale = self._detach_session()
                self.state = ViewState.LOGIN
            if stale is not None:
                stale.dispose()
            self._notify()

    def dispose(self) -> None:
        with self._lock:
            stale = self._detach_session()
            self._listeners.clear()
        if stale is not None:
            stale.dispose()
        self.gateway.close()

    # ---- Rendering ------------------------------------------------------------
    def render(self) -> str:
        """Full page for the current view. Inline messages are shown once."""
        with self._lock:
            if self.state is ViewState.LOGIN:
                body = templates.render_login(self.login_error, self.form_email)
                self.login_error = None
                return templates.render_page(self.state.value, body)
            if self.state is ViewState.SIGNUP:
                body = templates.render_signup(self.signup_error, self.form_email)
                self.signup_error = None
                return templates.render_page(self.state.value, body)
            if self.state is ViewState.DASHBOARD and self.session is not None:
                session = self.session
                body = templates.render_dashboard(
                    user=session.user,
                    selected_category=session.selected_category,
                    posts_html=session.posts_html(),
                    categories_html=session.categories_html(),
                    post_label=session.post_label,
                    post_error=session.post_error,
                    post_success=session.post_success,
                    category_error=session.category_error,
                )
                session.post_error = session.post_success = session.category_error = None
                return templates.render_page(self.state.value, body, container_class="min-h-screen")
            return templates.render_page(ViewState.LOADING.value, templates.render_loading())

    def render_fragments(self) -> Dict[str, str]:
        with self._lock:
            fragments = {"view": self.state.value, "posts_html": "", "categories_html": ""}
            if self.session is not None:
                fragments["posts_html"] = self.session.posts_html()
                fragments["categories_html"] = self.session.categories_html()
            return fragments
