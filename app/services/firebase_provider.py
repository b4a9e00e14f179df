import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import firebase_admin
import httpx
from firebase_admin import auth, credentials, firestore
from firebase_admin import exceptions as firebase_exceptions
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from app.core.config import Settings
from app.services.provider import (
    DESCENDING,
    AuthUser,
    Document,
    ProviderError,
    QuerySpec,
    Unsubscribe,
)

logger = logging.getLogger(__name__)

# Identity Toolkit REST error messages, normalized to the client SDK's error codes.
IDENTITY_ERROR_CODES = {
    "EMAIL_EXISTS": "auth/email-already-in-use",
    "INVALID_EMAIL": "auth/invalid-email",
    "OPERATION_NOT_ALLOWED": "auth/operation-not-allowed",
    "WEAK_PASSWORD": "auth/weak-password",
    "USER_DISABLED": "auth/user-disabled",
    "EMAIL_NOT_FOUND": "auth/user-not-found",
    "INVALID_PASSWORD": "auth/wrong-password",
    "INVALID_LOGIN_CREDENTIALS": "auth/invalid-credential",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "auth/too-many-requests",
}


def initialize_firebase_app(settings: Settings) -> None:
    try:
        firebase_admin.get_app()
        logger.info("Firebase app already initialized.")
    except ValueError:
        logger.info("Initializing Firebase app...")
        if settings.GOOGLE_APPLICATION_CREDENTIALS:
            cred = credentials.Certificate(settings.GOOGLE_APPLICATION_CREDENTIALS)
        else:
            # For environments like Google Cloud Run where service account is implicit
            cred = credentials.ApplicationDefault()

        firebase_admin.initialize_app(cred, {"projectId": settings.GOOGLE_CLOUD_PROJECT})
        logger.info("Firebase app initialized successfully.")


def identity_error_code(response: httpx.Response) -> str:
    """Map an Identity Toolkit error response to an ``auth/...`` code.

    Messages look like ``EMAIL_EXISTS`` or ``WEAK_PASSWORD : Password should
    be at least 6 characters``; only the leading token is significant.
    """
    try:
        message = response.json().get("error", {}).get("message", "")
    except ValueError:
        message = ""
    key = message.split(" : ", 1)[0].strip()
    if not key:
        return "auth/internal-error"
    return IDENTITY_ERROR_CODES.get(key, "auth/" + key.lower().replace("_", "-"))


def _firestore_error(e: google_exceptions.GoogleAPICallError) -> ProviderError:
    status = getattr(e, "grpc_status_code", None)
    code = status.name.lower().replace("_", "-") if status is not None else "unknown"
    return ProviderError(code, str(e))


class IdentityToolkitClient:
    """Email/password sign-up and sign-in over the Identity Toolkit REST API.

    One instance (and one pooled ``httpx.Client``) is shared by every session.
    """

    def __init__(self, settings: Settings, http_client: Optional[httpx.Client] = None):
        if not settings.FIREBASE_API_KEY:
            raise ValueError("FIREBASE_API_KEY must be set to use the Firebase backend.")
        self.settings = settings
        self.client = http_client or httpx.Client(timeout=settings.HTTP_TIMEOUT_SECONDS)

    def _post(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.settings.IDENTITY_TOOLKIT_URL}/accounts:{method}"
        try:
            resp = self.client.post(url, params={"key": self.settings.FIREBASE_API_KEY}, json=payload)
        except httpx.HTTPError as e:
            logger.error("Identity Toolkit request %s failed: %s", method, e)
            raise ProviderError("auth/network-request-failed", str(e))
        if resp.is_error:
            code = identity_error_code(resp)
            logger.warning("Identity Toolkit %s rejected with %s", method, code)
            raise ProviderError(code)
        return resp.json()

    def sign_up(self, email: str, password: str) -> Dict[str, Any]:
        return self._post("signUp", {"email": email, "password": password, "returnSecureToken": True})

    def sign_in_with_password(self, email: str, password: str) -> Dict[str, Any]:
        return self._post(
            "signInWithPassword", {"email": email, "password": password, "returnSecureToken": True}
        )

    def close(self) -> None:
        self.client.close()


class FirebaseProvider:
    """``BackendProvider`` backed by Firebase Auth and Cloud Firestore.

    Holds the signed-in user of one browser session; the Firestore client and
    the identity client are shared.
    """

    server_timestamp = firestore.SERVER_TIMESTAMP

    def __init__(self, settings: Settings, identity: IdentityToolkitClient, db=None):
        if db is None:
            initialize_firebase_app(settings)
            db = firestore.client()
        self.identity = identity
        self.db = db
        self._user: Optional[AuthUser] = None
        self._auth_listeners: List[Callable[[Optional[AuthUser]], None]] = []

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._user

    def _set_user(self, user: Optional[AuthUser]) -> None:
        self._user = user
        for callback in list(self._auth_listeners):
            callback(user)

    def _to_auth_user(self, payload: Dict[str, Any]) -> AuthUser:
        user = AuthUser(
            uid=payload["localId"],
            email=payload.get("email", ""),
            id_token=payload.get("idToken"),
        )
        try:
            record = auth.get_user(user.uid)
            user.email_verified = bool(record.email_verified)
            last_sign_in = record.user_metadata.last_sign_in_timestamp
            if last_sign_in:
                user.last_sign_in = datetime.fromtimestamp(last_sign_in / 1000, tz=timezone.utc)
        except (firebase_exceptions.FirebaseError, ValueError) as e:
            logger.warning("Could not load account metadata for %s: %s", user.uid, e)
        return user

    # ---- Auth -----------------------------------------------------------------
    def create_account(self, email: str, password: str) -> AuthUser:
        user = self._to_auth_user(self.identity.sign_up(email, password))
        logger.info("Created account %s", user.uid)
        self._set_user(user)
        return user

    def sign_in(self, email: str, password: str) -> AuthUser:
        user = self._to_auth_user(self.identity.sign_in_with_password(email, password))
        logger.info("Signed in %s", user.uid)
        self._set_user(user)
        return user

    def sign_out(self) -> None:
        # ID tokens are short-lived bearer tokens; dropping them ends the session.
        self._set_user(None)

    def on_auth_state_changed(self, callback: Callable[[Optional[AuthUser]], None]) -> Unsubscribe:
        self._auth_listeners.append(callback)
        callback(self._user)

        def unsubscribe():
            if callback in self._auth_listeners:
                self._auth_listeners.remove(callback)

        return unsubscribe

    # ---- Documents ------------------------------------------------------------
    def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            snapshot = self.db.collection(collection).document(doc_id).get()
        except google_exceptions.GoogleAPICallError as e:
            raise _firestore_error(e)
        return snapshot.to_dict() if snapshot.exists else None

    def set_document(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        try:
            self.db.collection(collection).document(doc_id).set(data, merge=merge)
        except google_exceptions.GoogleAPICallError as e:
            raise _firestore_error(e)

    def add_document(self, collection: str, data: Dict[str, Any]) -> str:
        try:
            _, doc_ref = self.db.collection(collection).add(data)
        except google_exceptions.GoogleAPICallError as e:
            raise _firestore_error(e)
        return doc_ref.id

    def _build_query(self, spec: QuerySpec):
        query = self.db.collection(spec.collection)
        for name, value in spec.filters:
            query = query.where(filter=FieldFilter(name, "==", value))
        if spec.order_by:
            direction = firestore.Query.DESCENDING if spec.direction == DESCENDING else firestore.Query.ASCENDING
            query = query.order_by(spec.order_by, direction=direction)
        if spec.limit is not None:
            query = query.limit(spec.limit)
        return query

    def run_query(self, query: QuerySpec) -> List[Document]:
        try:
            return [(doc.id, doc.to_dict()) for doc in self._build_query(query).stream()]
        except google_exceptions.GoogleAPICallError as e:
            raise _firestore_error(e)

    def listen(
        self,
        query: QuerySpec,
        on_change: Callable[[List[Document]], None],
        on_error: Callable[[Exception], None],
    ) -> Unsubscribe:
        # Snapshot callbacks run on the watch stream's background thread.
        def on_snapshot(docs, changes, read_time):
            try:
                results = [(doc.id, doc.to_dict()) for doc in docs]
            except Exception as e:
                logger.exception("Failed to read snapshot for %s", query.collection)
                on_error(e)
                return
            on_change(results)

        try:
            watch = self._build_query(query).on_snapshot(on_snapshot)
        except google_exceptions.GoogleAPICallError as e:
            on_error(_firestore_error(e))
            return lambda: None
        return watch.unsubscribe
