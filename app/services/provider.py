"""
Capability interface for the external identity + document-store provider.

Everything stateful (accounts, documents, live queries) lives behind this
interface; the gateway and the view layer only ever talk to a
``BackendProvider``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

ASCENDING = "asc"
DESCENDING = "desc"

Unsubscribe = Callable[[], None]
Document = Tuple[str, Dict[str, Any]]


class ProviderError(Exception):
    """A failure reported by the provider.

    ``code`` follows the provider's client vocabulary, e.g.
    ``auth/email-already-in-use`` or ``permission-denied``.
    """

    def __init__(self, code: str, message: str = ""):
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code
        self.message = message


@dataclass
class AuthUser:
    uid: str
    email: str
    email_verified: bool = False
    last_sign_in: Optional[datetime] = None
    id_token: Optional[str] = field(default=None, repr=False)


@dataclass
class QuerySpec:
    """Equality filters + a single order-by + optional limit."""

    collection: str
    filters: List[Tuple[str, Any]] = field(default_factory=list)
    order_by: Optional[str] = None
    direction: str = ASCENDING
    limit: Optional[int] = None

    def where(self, field_name: str, value: Any) -> "QuerySpec":
        self.filters.append((field_name, value))
        return self


class BackendProvider(Protocol):
    """Interface for auth + document storage."""

    server_timestamp: Any

    @property
    def current_user(self) -> Optional[AuthUser]:
        ...

    def create_account(self, email: str, password: str) -> AuthUser:
        ...

    def sign_in(self, email: str, password: str) -> AuthUser:
        ...

    def sign_out(self) -> None:
        ...

    def on_auth_state_changed(
        self, callback: Callable[[Optional[AuthUser]], None]
    ) -> Unsubscribe:
        """Invoke ``callback`` now with the current user and on every change."""
        ...

    def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        ...

    def set_document(
        self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False
    ) -> None:
        ...

    def add_document(self, collection: str, data: Dict[str, Any]) -> str:
        ...

    def run_query(self, query: QuerySpec) -> List[Document]:
        ...

    def listen(
        self,
        query: QuerySpec,
        on_change: Callable[[List[Document]], None],
        on_error: Callable[[Exception], None],
    ) -> Unsubscribe:
        """Open a live query; ``on_change`` gets the full result set each time."""
        ...
