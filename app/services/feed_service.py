import logging
from typing import Callable, List, Optional

from app.core.exceptions import (
    AuthenticationError,
    AuthRequiredError,
    GatewayError,
    InvalidInputError,
)
from app.models.post import (
    ALL_CATEGORIES,
    DEFAULT_CATEGORY,
    MAX_POST_LENGTH,
    Category,
    Post,
)
from app.models.user import UserProfile
from app.services.provider import (
    ASCENDING,
    DESCENDING,
    AuthUser,
    BackendProvider,
    Document,
    ProviderError,
    QuerySpec,
    Unsubscribe,
)

logger = logging.getLogger(__name__)

USERS = "users"
POSTS = "posts"
CATEGORIES = "categories"

AUTH_ERROR_MESSAGES = {
    "auth/email-already-in-use": "An account with this email already exists",
    "auth/invalid-email": "Please enter a valid email address",
    "auth/operation-not-allowed": "Email/password accounts are not enabled",
    "auth/weak-password": "Password should be at least 6 characters",
    "auth/user-disabled": "This account has been disabled",
    "auth/user-not-found": "No account found with this email",
    "auth/wrong-password": "Incorrect password",
    "auth/invalid-credential": "Invalid email or password",
    "auth/too-many-requests": "Too many failed attempts. Please try again later",
}
GENERIC_AUTH_ERROR = "Authentication failed. Please try again"


def auth_error_message(code: Optional[str]) -> str:
    return AUTH_ERROR_MESSAGES.get(code, GENERIC_AUTH_ERROR)


class Subscription:
    """Handle for a live query. ``unsubscribe()`` may be called any number of times."""

    def __init__(self, name: str, release: Unsubscribe):
        self.name = name
        self._release = release
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._release()
        logger.debug("Released %s subscription", self.name)

    def __repr__(self):
        return f"Subscription({self.name!r}, active={self.active})"


class FeedGateway:
    """Auth and data access for one session, on top of a ``BackendProvider``.

    Validation happens here, before any provider call; provider failures are
    translated into ``FeedError`` subclasses carrying user-facing messages.
    """

    def __init__(self, provider: BackendProvider, page_size: int = 50):
        self.provider = provider
        self.page_size = page_size
        self.current_user: Optional[AuthUser] = None
        self._auth_unsubscribe: Optional[Unsubscribe] = None

    # ---- Auth state -----------------------------------------------------------
    def watch_auth_state(self, callback: Callable[[Optional[AuthUser]], None]) -> None:
        """Track the provider's auth state and forward every change to ``callback``."""
        if self._auth_unsubscribe:
            self._auth_unsubscribe()

        def on_change(user: Optional[AuthUser]) -> None:
            self.current_user = user
            callback(user)

        self._auth_unsubscribe = self.provider.on_auth_state_changed(on_change)

    def is_authenticated(self) -> bool:
        return self.current_user is not None

    def close(self) -> None:
        if self._auth_unsubscribe:
            self._auth_unsubscribe()
            self._auth_unsubscribe = None

    def _require_user(self, action: str) -> AuthUser:
        # The provider may have signed in before any auth listener was attached.
        user = self.current_user or self.provider.current_user
        if user is None:
            raise AuthRequiredError(f"User must be authenticated to {action}")
        return user

    # ---- Accounts -------------------------------------------------------------
    def register(self, email: str, password: str) -> AuthUser:
        try:
            user = self.provider.create_account(email, password)
        except ProviderError as e:
            logger.warning("Registration failed for %s: %s", email, e.code)
            raise AuthenticationError(auth_error_message(e.code), code=e.code)

        profile = {
            "email": email,
            "createdAt": self.provider.server_timestamp,
            "lastLogin": self.provider.server_timestamp,
        }
        try:
            self.provider.set_document(USERS, user.uid, profile)
        except ProviderError:
            logger.exception("Error creating user profile for %s", user.uid)
            raise GatewayError("Failed to create user profile")
        return user

    def authenticate(self, email: str, password: str) -> AuthUser:
        try:
            user = self.provider.sign_in(email, password)
        except ProviderError as e:
            logger.warning("Failed login attempt for user: %s (%s)", email, e.code)
            raise AuthenticationError(auth_error_message(e.code), code=e.code)

        try:
            self.provider.set_document(
                USERS, user.uid, {"lastLogin": self.provider.server_timestamp}, merge=True
            )
        except ProviderError:
            logger.exception("Error updating user profile for %s", user.uid)
        return user

    def logout(self) -> None:
        try:
            self.provider.sign_out()
        except ProviderError:
            logger.exception("Error signing out")
            raise GatewayError("Failed to sign out")

    def get_user_profile(self, uid: str) -> Optional[UserProfile]:
        try:
            data = self.provider.get_document(USERS, uid)
        except ProviderError:
            logger.exception("Error getting user profile for %s", uid)
            return None
        return UserProfile.from_document(data) if data is not None else None

    # ---- Posts ----------------------------------------------------------------
    def create_post(self, content: str, category: Optional[str] = DEFAULT_CATEGORY) -> Post:
        user = self._require_user("create posts")
        content = (content or "").strip()
        if not content:
            raise InvalidInputError("Post content cannot be empty")
        if len(content) > MAX_POST_LENGTH:
            raise InvalidInputError(f"Post content cannot exceed {MAX_POST_LENGTH} characters")
        category = (category or "").strip()
        if not category or category == ALL_CATEGORIES:
            # "All" is the unfiltered view, not a category a post can carry.
            category = DEFAULT_CATEGORY

        data = {
            "content": content,
            "category": category,
            "userId": user.uid,
            "userEmail": user.email,
            "createdAt": self.provider.server_timestamp,
            "updatedAt": self.provider.server_timestamp,
        }
        try:
            post_id = self.provider.add_document(POSTS, data)
        except ProviderError:
            logger.exception("Error creating post")
            raise GatewayError("Failed to create post")
        logger.info("User %s created post %s in %s", user.uid, post_id, category)
        return Post.from_document(post_id, data)

    def _posts_query(self, category: Optional[str], limit: Optional[int]) -> QuerySpec:
        query = QuerySpec(
            POSTS, order_by="createdAt", direction=DESCENDING, limit=limit or self.page_size
        )
        if category and category != ALL_CATEGORIES:
            query.where("category", category)
        return query

    def get_posts(self, limit: Optional[int] = None, category: Optional[str] = None) -> List[Post]:
        self._require_user("view posts")
        try:
            docs = self.provider.run_query(self._posts_query(category, limit))
        except ProviderError:
            logger.exception("Error getting posts")
            raise GatewayError("Failed to get posts")
        return [Post.from_document(doc_id, data) for doc_id, data in docs]

    def subscribe_to_posts(
        self,
        callback: Callable[[List[Post]], None],
        category: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Subscription:
        self._require_user("view posts")
        return self._subscribe(
            "posts",
            self._posts_query(category, limit),
            lambda docs: callback([Post.from_document(doc_id, data) for doc_id, data in docs]),
            callback,
        )

    # ---- Categories -----------------------------------------------------------
    def create_category(self, name: str) -> Category:
        user = self._require_user("create categories")
        name = (name or "").strip()
        if not name:
            raise InvalidInputError("Category name cannot be empty")

        data = {
            "name": name,
            "createdBy": user.uid,
            "createdAt": self.provider.server_timestamp,
        }
        try:
            category_id = self.provider.add_document(CATEGORIES, data)
        except ProviderError:
            logger.exception("Error creating category")
            raise GatewayError("Failed to create category")
        logger.info("User %s created category %r", user.uid, name)
        return Category.from_document(category_id, data)

    def _categories_query(self) -> QuerySpec:
        return QuerySpec(CATEGORIES, order_by="createdAt", direction=ASCENDING)

    def get_categories(self) -> List[Category]:
        self._require_user("view categories")
        try:
            docs = self.provider.run_query(self._categories_query())
        except ProviderError:
            logger.exception("Error getting categories")
            raise GatewayError("Failed to get categories")
        return [Category.from_document(doc_id, data) for doc_id, data in docs]

    def subscribe_to_categories(self, callback: Callable[[List[Category]], None]) -> Subscription:
        self._require_user("view categories")
        return self._subscribe(
            "categories",
            self._categories_query(),
            lambda docs: callback([Category.from_document(doc_id, data) for doc_id, data in docs]),
            callback,
        )

    # ---- Live queries ---------------------------------------------------------
    def _subscribe(
        self,
        name: str,
        query: QuerySpec,
        on_docs: Callable[[List[Document]], None],
        callback: Callable[[list], None],
    ) -> Subscription:
        def on_error(error: Exception) -> None:
            # Errors degrade to an empty result set; the view shows "no items".
            logger.error("Error listening to %s: %s", name, error)
            callback([])

        try:
            release = self.provider.listen(query, on_docs, on_error)
        except ProviderError:
            logger.exception("Error subscribing to %s", name)
            raise GatewayError(f"Failed to subscribe to {name}")
        logger.debug("Opened %s subscription", name)
        return Subscription(name, release)
