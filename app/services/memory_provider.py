"""
In-process provider for development and tests.

``InMemoryBackend`` plays the role of the hosted service (accounts,
collections, live queries) and is shared by every browser session.
``InMemoryProvider`` is one client of it: it carries the signed-in user and
applies the same access policy the hosted security rules apply.
"""

from __future__ import annotations

import hashlib
import itertools
import logging
import secrets
import string
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from app.models.user import EMAIL_RE, MIN_PASSWORD_LENGTH
from app.services.provider import (
    DESCENDING,
    AuthUser,
    Document,
    ProviderError,
    QuerySpec,
    Unsubscribe,
)

logger = logging.getLogger(__name__)

DOC_ID_ALPHABET = string.ascii_letters + string.digits

# Collections readable by any signed-in user, mapped to the field naming the creator.
OWNED_COLLECTIONS = {"posts": "userId", "categories": "createdBy"}
PROFILE_COLLECTION = "users"


class _ServerTimestamp:
    def __repr__(self):
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def _hash_password(password: str, salt_hex: Optional[str] = None) -> str:
    if salt_hex is None:
        salt_hex = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), bytes.fromhex(salt_hex), 100_000)
    return f"{salt_hex}${digest.hex()}"


def _verify_password(password: str, stored: str) -> bool:
    salt_hex, digest_hex = stored.split("$", 1)
    return secrets.compare_digest(_hash_password(password, salt_hex).split("$", 1)[1], digest_hex)


@dataclass
class AccountRecord:
    uid: str
    email: str
    password_hash: str = field(repr=False)
    email_verified: bool = False
    disabled: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_sign_in: Optional[datetime] = None
    failed_attempts: int = 0
    locked_until: float = 0.0

    def to_auth_user(self) -> AuthUser:
        return AuthUser(
            uid=self.uid,
            email=self.email,
            email_verified=self.email_verified,
            last_sign_in=self.last_sign_in,
        )


@dataclass
class _StoredDocument:
    data: Dict[str, Any]
    seq: int


@dataclass
class _Listener:
    query: QuerySpec
    on_change: Callable[[List[Document]], None]
    on_error: Callable[[Exception], None]


class InMemoryBackend:
    """Shared state standing in for the hosted identity + document service."""

    def __init__(self, max_failed_attempts: int = 5, lockout_seconds: float = 60.0):
        self.max_failed_attempts = max_failed_attempts
        self.lockout_seconds = lockout_seconds
        self._lock = threading.RLock()
        self._seq = itertools.count(1)
        self.accounts: Dict[str, AccountRecord] = {}
        self.collections: Dict[str, Dict[str, _StoredDocument]] = {}
        self._listeners: Dict[int, _Listener] = {}
        self._listener_ids = itertools.count(1)

    def reset(self) -> None:
        with self._lock:
            self.accounts.clear()
            self.collections.clear()
            self._listeners.clear()

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    # ---- Accounts -------------------------------------------------------------
    def create_account(self, email: str, password: str) -> AccountRecord:
        key = (email or "").strip().lower()
        if not EMAIL_RE.match(key):
            raise ProviderError("auth/invalid-email", "The email address is badly formatted.")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ProviderError("auth/weak-password", "Password should be at least 6 characters")
        with self._lock:
            if key in self.accounts:
                raise ProviderError("auth/email-already-in-use")
            account = AccountRecord(
                uid=uuid.uuid4().hex[:28],
                email=key,
                password_hash=_hash_password(password),
                last_sign_in=datetime.now(timezone.utc),
            )
            self.accounts[key] = account
        logger.info("Created account %s", account.uid)
        return account

    def authenticate(self, email: str, password: str) -> AccountRecord:
        key = (email or "").strip().lower()
        if not EMAIL_RE.match(key):
            raise ProviderError("auth/invalid-email", "The email address is badly formatted.")
        with self._lock:
            account = self.accounts.get(key)
            if account is None:
                raise ProviderError("auth/invalid-credential")
            if account.locked_until > time.monotonic():
                raise ProviderError("auth/too-many-requests")
            if not _verify_password(password or "", account.password_hash):
                account.failed_attempts += 1
                if account.failed_attempts >= self.max_failed_attempts:
                    account.failed_attempts = 0
                    account.locked_until = time.monotonic() + self.lockout_seconds
                raise ProviderError("auth/invalid-credential")
            if account.disabled:
                raise ProviderError("auth/user-disabled")
            account.failed_attempts = 0
            account.last_sign_in = datetime.now(timezone.utc)
            return account

    def disable_account(self, email: str) -> None:
        with self._lock:
            self.accounts[email.strip().lower()].disabled = True

    # ---- Documents ------------------------------------------------------------
    def _resolve(self, data: Dict[str, Any]) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        return {k: (now if v is SERVER_TIMESTAMP else v) for k, v in data.items()}

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            stored = self.collections.get(collection, {}).get(doc_id)
            return dict(stored.data) if stored else None

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        with self._lock:
            docs = self.collections.setdefault(collection, {})
            stored = docs.get(doc_id)
            resolved = self._resolve(data)
            if stored and merge:
                stored.data.update(resolved)
            elif stored:
                stored.data = resolved
            else:
                docs[doc_id] = _StoredDocument(data=resolved, seq=next(self._seq))
        self._notify(collection)

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = "".join(secrets.choice(DOC_ID_ALPHABET) for _ in range(20))
        with self._lock:
            self.collections.setdefault(collection, {})[doc_id] = _StoredDocument(
                data=self._resolve(data), seq=next(self._seq)
            )
        self._notify(collection)
        return doc_id

    def query(self, query: QuerySpec) -> List[Document]:
        with self._lock:
            docs = list(self.collections.get(query.collection, {}).items())
        matched = [
            (doc_id, stored)
            for doc_id, stored in docs
            if all(stored.data.get(name) == value for name, value in query.filters)
        ]
        if query.order_by:
            # Documents missing the order-by field are excluded, as the hosted service does.
            matched = [item for item in matched if item[1].data.get(query.order_by) is not None]
            matched.sort(
                key=lambda item: (item[1].data[query.order_by], item[1].seq),
                reverse=query.direction == DESCENDING,
            )
        if query.limit is not None:
            matched = matched[: query.limit]
        return [(doc_id, dict(stored.data)) for doc_id, stored in matched]

    # ---- Live queries ---------------------------------------------------------
    def add_listener(self, listener: _Listener) -> int:
        with self._lock:
            key = next(self._listener_ids)
            self._listeners[key] = listener
        self._deliver(listener)
        return key

    def remove_listener(self, key: int) -> None:
        with self._lock:
            self._listeners.pop(key, None)

    def _notify(self, collection: str) -> None:
        with self._lock:
            listeners = [l for l in self._listeners.values() if l.query.collection == collection]
        for listener in listeners:
            self._deliver(listener)

    def _deliver(self, listener: _Listener) -> None:
        try:
            results = self.query(listener.query)
        except Exception as e:
            logger.exception("Live query on %s failed", listener.query.collection)
            listener.on_error(e)
            return
        try:
            listener.on_change(results)
        except Exception:
            logger.exception("Snapshot callback for %s raised", listener.query.collection)


class InMemoryProvider:
    """One client session against an ``InMemoryBackend``."""

    server_timestamp = SERVER_TIMESTAMP

    def __init__(self, backend: InMemoryBackend):
        self.backend = backend
        self._user: Optional[AuthUser] = None
        self._auth_listeners: List[Callable[[Optional[AuthUser]], None]] = []

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._user

    def _set_user(self, user: Optional[AuthUser]) -> None:
        self._user = user
        for callback in list(self._auth_listeners):
            callback(user)

    # ---- Auth -----------------------------------------------------------------
    def create_account(self, email: str, password: str) -> AuthUser:
        user = self.backend.create_account(email, password).to_auth_user()
        self._set_user(user)
        return user

    def sign_in(self, email: str, password: str) -> AuthUser:
        user = self.backend.authenticate(email, password).to_auth_user()
        self._set_user(user)
        return user

    def sign_out(self) -> None:
        self._set_user(None)

    def on_auth_state_changed(self, callback: Callable[[Optional[AuthUser]], None]) -> Unsubscribe:
        self._auth_listeners.append(callback)
        callback(self._user)

        def unsubscribe():
            if callback in self._auth_listeners:
                self._auth_listeners.remove(callback)

        return unsubscribe

    # ---- Access policy --------------------------------------------------------
    def _require_user(self) -> AuthUser:
        if self._user is None:
            raise ProviderError("permission-denied", "Missing or insufficient permissions.")
        return self._user

    def _check_document_access(self, collection: str, doc_id: str) -> None:
        user = self._require_user()
        if collection == PROFILE_COLLECTION and doc_id != user.uid:
            raise ProviderError("permission-denied", "Profiles are private to their owner.")

    def _check_create(self, collection: str, data: Dict[str, Any]) -> None:
        user = self._require_user()
        owner_field = OWNED_COLLECTIONS.get(collection)
        if owner_field and data.get(owner_field) != user.uid:
            raise ProviderError("permission-denied", f"{collection} must be attributed to the caller.")

    def _check_update(self, collection: str, doc_id: str) -> None:
        self._check_document_access(collection, doc_id)
        owner_field = OWNED_COLLECTIONS.get(collection)
        existing = self.backend.get(collection, doc_id)
        if owner_field and existing is not None and existing.get(owner_field) != self._user.uid:
            raise ProviderError("permission-denied", f"Only the creator may change this {collection} entry.")

    def _check_query(self, query: QuerySpec) -> None:
        self._require_user()
        if query.collection == PROFILE_COLLECTION:
            raise ProviderError("permission-denied", "Profiles cannot be listed.")

    # ---- Documents ------------------------------------------------------------
    def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        self._check_document_access(collection, doc_id)
        return self.backend.get(collection, doc_id)

    def set_document(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._check_update(collection, doc_id)
        if collection in OWNED_COLLECTIONS and self.backend.get(collection, doc_id) is None:
            self._check_create(collection, data)
        self.backend.set(collection, doc_id, data, merge=merge)

    def add_document(self, collection: str, data: Dict[str, Any]) -> str:
        self._check_create(collection, data)
        return self.backend.add(collection, data)

    def run_query(self, query: QuerySpec) -> List[Document]:
        self._check_query(query)
        return self.backend.query(query)

    def listen(
        self,
        query: QuerySpec,
        on_change: Callable[[List[Document]], None],
        on_error: Callable[[Exception], None],
    ) -> Unsubscribe:
        try:
            self._check_query(query)
        except ProviderError as e:
            on_error(e)
            return lambda: None
        key = self.backend.add_listener(_Listener(query=query, on_change=on_change, on_error=on_error))
        return lambda: self.backend.remove_listener(key)
