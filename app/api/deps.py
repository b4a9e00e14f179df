from fastapi import Depends, Request
from functools import lru_cache

from app.controllers.sessions import SessionRegistry
from app.controllers.view_controller import ViewController
from app.core.config import get_settings, Settings
from app.core.exceptions import AuthRequiredError
from app.models.user import User
from app.services.feed_service import FeedGateway
from app.services.firebase_provider import FirebaseProvider, IdentityToolkitClient
from app.services.memory_provider import InMemoryBackend, InMemoryProvider
from app.services.provider import BackendProvider

# Backend Dependencies
@lru_cache()
def get_memory_backend() -> InMemoryBackend:
    # Shared by every session so all browsers see the same feed.
    return InMemoryBackend()

@lru_cache()
def get_identity_client() -> IdentityToolkitClient:
    # One pooled HTTP client for all sessions.
    return IdentityToolkitClient(get_settings())

def build_provider(settings: Settings) -> BackendProvider:
    backend = settings.BACKEND_PROVIDER.lower()
    if backend == "firebase":
        return FirebaseProvider(settings, get_identity_client())
    if backend == "memory":
        return InMemoryProvider(get_memory_backend())
    raise ValueError(f"Unknown BACKEND_PROVIDER: {settings.BACKEND_PROVIDER!r}")

@lru_cache()
def get_session_registry() -> SessionRegistry:
    settings = get_settings()
    return SessionRegistry(
        lambda: build_provider(settings),
        idle_minutes=settings.SESSION_IDLE_MINUTES,
        page_size=settings.POSTS_PAGE_SIZE,
    )

# Session Dependencies
def get_view_controller(
    request: Request,
    registry: SessionRegistry = Depends(get_session_registry),
) -> ViewController:
    """
    Returns the controller bound to this browser's session cookie.
    The cookie itself is issued by the session middleware in main.py.
    """
    return registry.get_or_create(request.state.session_id)

def get_gateway(controller: ViewController = Depends(get_view_controller)) -> FeedGateway:
    return controller.gateway

# User Dependency
def get_current_user(gateway: FeedGateway = Depends(get_gateway)) -> User:
    user = gateway.current_user
    if user is None:
        raise AuthRequiredError("Not authenticated")
    return User.from_auth_user(user)
