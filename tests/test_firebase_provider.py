import json
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import httpx
from google.api_core import exceptions as google_exceptions

from app.core.config import Settings
from app.services.firebase_provider import (
    FirebaseProvider,
    IdentityToolkitClient,
    identity_error_code,
)
from app.services.provider import DESCENDING, ProviderError, QuerySpec


def _error_response(message):
    return httpx.Response(400, json={"error": {"code": 400, "message": message}})


def _settings():
    return Settings(FIREBASE_API_KEY="test-key", IDENTITY_TOOLKIT_URL="https://identity.test/v1")


class IdentityErrorCodeTests(unittest.TestCase):
    def test_known_messages(self):
        self.assertEqual(identity_error_code(_error_response("EMAIL_EXISTS")), "auth/email-already-in-use")
        self.assertEqual(identity_error_code(_error_response("INVALID_LOGIN_CREDENTIALS")), "auth/invalid-credential")
        self.assertEqual(
            identity_error_code(_error_response("WEAK_PASSWORD : Password should be at least 6 characters")),
            "auth/weak-password",
        )
        self.assertEqual(
            identity_error_code(_error_response("TOO_MANY_ATTEMPTS_TRY_LATER : Access disabled")),
            "auth/too-many-requests",
        )

    def test_unknown_messages(self):
        self.assertEqual(identity_error_code(_error_response("CAPTCHA_CHECK_FAILED")), "auth/captcha-check-failed")
        self.assertEqual(identity_error_code(httpx.Response(500, text="oops")), "auth/internal-error")


class IdentityToolkitClientTests(unittest.TestCase):
    def _client(self, handler):
        return IdentityToolkitClient(_settings(), http_client=httpx.Client(transport=httpx.MockTransport(handler)))

    def test_requires_api_key(self):
        with self.assertRaises(ValueError):
            IdentityToolkitClient(Settings(FIREBASE_API_KEY=None))

    def test_sign_up(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"localId": "uid-1", "email": "a@b.com", "idToken": "tok"})

        payload = self._client(handler).sign_up("a@b.com", "secret1")
        self.assertEqual(payload["localId"], "uid-1")
        request = requests[0]
        self.assertEqual(request.url.path, "/v1/accounts:signUp")
        self.assertEqual(request.url.params["key"], "test-key")
        self.assertEqual(
            json.loads(request.content),
            {"email": "a@b.com", "password": "secret1", "returnSecureToken": True},
        )

    def test_rejected_sign_in(self):
        client = self._client(lambda request: _error_response("INVALID_LOGIN_CREDENTIALS"))
        with self.assertRaises(ProviderError) as ctx:
            client.sign_in_with_password("a@b.com", "nope")
        self.assertEqual(ctx.exception.code, "auth/invalid-credential")

    def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(ProviderError) as ctx:
            self._client(handler).sign_in_with_password("a@b.com", "secret1")
        self.assertEqual(ctx.exception.code, "auth/network-request-failed")


class FirebaseProviderTests(unittest.TestCase):
    def setUp(self):
        self.identity = MagicMock()
        self.db = MagicMock()
        self.provider = FirebaseProvider(_settings(), self.identity, db=self.db)
        record = MagicMock(email_verified=True)
        record.user_metadata.last_sign_in_timestamp = 1700000000000
        patcher = patch("app.services.firebase_provider.auth.get_user", return_value=record)
        self.get_user = patcher.start()
        self.addCleanup(patcher.stop)

    def test_sign_in_loads_account_metadata(self):
        self.identity.sign_in_with_password.return_value = {"localId": "uid-1", "email": "a@b.com", "idToken": "tok"}
        seen = []
        self.provider.on_auth_state_changed(seen.append)
        user = self.provider.sign_in("a@b.com", "secret1")
        self.assertEqual(user.uid, "uid-1")
        self.assertTrue(user.email_verified)
        self.assertEqual(user.last_sign_in, datetime.fromtimestamp(1700000000, tz=timezone.utc))
        self.assertEqual(user.id_token, "tok")
        self.assertEqual(seen, [None, user])
        self.get_user.assert_called_once_with("uid-1")

        self.provider.sign_out()
        self.assertIsNone(self.provider.current_user)
        self.assertEqual(seen[-1], None)

    def test_metadata_failure_keeps_user(self):
        self.get_user.side_effect = ValueError("no app")
        self.identity.sign_up.return_value = {"localId": "uid-2", "email": "a@b.com"}
        user = self.provider.create_account("a@b.com", "secret1")
        self.assertEqual(user.uid, "uid-2")
        self.assertFalse(user.email_verified)
        self.assertEqual(self.provider.current_user, user)

    def test_identity_errors_propagate(self):
        self.identity.sign_up.side_effect = ProviderError("auth/email-already-in-use")
        with self.assertRaises(ProviderError):
            self.provider.create_account("a@b.com", "secret1")
        self.assertIsNone(self.provider.current_user)

    def test_documents(self):
        doc_ref = self.db.collection.return_value.document.return_value
        doc_ref.get.return_value = MagicMock(exists=True, **{"to_dict.return_value": {"email": "a@b.com"}})
        self.assertEqual(self.provider.get_document("users", "uid-1"), {"email": "a@b.com"})

        doc_ref.get.return_value = MagicMock(exists=False)
        self.assertIsNone(self.provider.get_document("users", "uid-1"))

        self.provider.set_document("users", "uid-1", {"lastLogin": 1}, merge=True)
        doc_ref.set.assert_called_once_with({"lastLogin": 1}, merge=True)

        self.db.collection.return_value.add.return_value = (None, MagicMock(id="post-1"))
        self.assertEqual(self.provider.add_document("posts", {"content": "hi"}), "post-1")

    def test_permission_denied(self):
        self.db.collection.return_value.add.side_effect = google_exceptions.PermissionDenied("denied")
        with self.assertRaises(ProviderError) as ctx:
            self.provider.add_document("posts", {"content": "hi"})
        self.assertEqual(ctx.exception.code, "permission-denied")

    def test_query_translation(self):
        collection = self.db.collection.return_value
        filtered = collection.where.return_value
        ordered = filtered.order_by.return_value
        limited = ordered.limit.return_value
        limited.stream.return_value = [MagicMock(id="p1", **{"to_dict.return_value": {"content": "hi"}})]

        spec = QuerySpec("posts", order_by="createdAt", direction=DESCENDING, limit=50).where("category", "News")
        self.assertEqual(self.provider.run_query(spec), [("p1", {"content": "hi"})])

        self.db.collection.assert_called_with("posts")
        field_filter = collection.where.call_args.kwargs["filter"]
        self.assertEqual((field_filter.field_path, field_filter.op_string, field_filter.value), ("category", "==", "News"))
        self.assertEqual(filtered.order_by.call_args.args, ("createdAt",))
        ordered.limit.assert_called_once_with(50)

    def test_listen(self):
        watch = MagicMock()
        query = self.db.collection.return_value
        query.on_snapshot.return_value = watch
        batches = []

        unsubscribe = self.provider.listen(QuerySpec("categories"), batches.append, self.fail)
        on_snapshot = query.on_snapshot.call_args.args[0]
        on_snapshot([MagicMock(id="c1", **{"to_dict.return_value": {"name": "News"}})], [], None)
        self.assertEqual(batches, [[("c1", {"name": "News"})]])

        unsubscribe()
        watch.unsubscribe.assert_called_once_with()

    def test_listen_setup_failure(self):
        self.db.collection.return_value.on_snapshot.side_effect = google_exceptions.PermissionDenied("denied")
        errors = []
        unsubscribe = self.provider.listen(QuerySpec("posts"), self.fail, errors.append)
        unsubscribe()
        self.assertEqual(errors[0].code, "permission-denied")


if __name__ == "__main__":
    unittest.main()
