import logging
import threading
import time
from typing import Callable, Dict, Optional

from app.controllers.view_controller import ViewController
from app.services.feed_service import FeedGateway
from app.services.provider import BackendProvider

logger = logging.getLogger(__name__)


class SessionRegistry:
    """One ``ViewController`` per browser session, keyed by the session cookie.

    Controllers idle for longer than ``idle_minutes`` (and with no open event
    stream) are disposed on the next sweep, which releases any live
    subscriptions they still hold.
    """

    def __init__(
        self,
        provider_factory: Callable[[], BackendProvider],
        idle_minutes: int = 60,
        page_size: int = 50,
    ):
        self.provider_factory = provider_factory
        self.idle_seconds = idle_minutes * 60
        self.page_size = page_size
        self._controllers: Dict[str, ViewController] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._controllers)

    def get(self, session_id: str) -> Optional[ViewController]:
        return self._controllers.get(session_id)

    def get_or_create(self, session_id: str) -> ViewController:
        self.sweep()
        created = False
        with self._lock:
            controller = self._controllers.get(session_id)
            if controller is None:
                gateway = FeedGateway(self.provider_factory(), page_size=self.page_size)
                controller = ViewController(gateway)
                self._controllers[session_id] = controller
                created = True
        if created:
            logger.debug("Created view controller for session %s", session_id[:8])
            controller.start()
        controller.touch()
        return controller

    def discard(self, session_id: str) -> None:
        with self._lock:
            controller = self._controllers.pop(session_id, None)
        if controller is not None:
            controller.dispose()

    def sweep(self, now: Optional[float] = None) -> int:
        now = time.monotonic() if now is None else now
        with self._lock:
            expired = [
                session_id
                for session_id, controller in self._controllers.items()
                if now - controller.last_seen > self.idle_seconds and not controller.has_listeners
            ]
            controllers = [self._controllers.pop(session_id) for session_id in expired]
        for controller in controllers:
            controller.dispose()
        if controllers:
            logger.info("Disposed %d idle session(s)", len(controllers))
        return len(controllers)

    def close_all(self) -> None:
        with self._lock:
            controllers = list(self._controllers.values())
            self._controllers.clear()
        for controller in controllers:
            controller.dispose()
        logger.info("Closed %d session(s)", len(controllers))
