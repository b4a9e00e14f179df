import asyncio
import json
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from app.api.deps import get_memory_backend, get_session_registry
from app.api.routers.pages import refresh_events
from app.controllers.view_controller import ViewController
from app.core.config import get_settings
from app.services.feed_service import FeedGateway
from app.services.memory_provider import InMemoryBackend, InMemoryProvider
from main import app


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        get_session_registry().close_all()
        get_memory_backend().reset()
        self.client = TestClient(app)

    def tearDown(self):
        get_session_registry().close_all()

    def register(self, email="a@b.com", password="secret1"):
        return self.client.post("/api/v1/auth/register", json={"email": email, "password": password})


class PageTests(ApiTestCase):
    def test_index_shows_login_and_sets_cookie(self):
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertIn('data-view="login"', response.text)
        self.assertIn(get_settings().SESSION_COOKIE_NAME, response.cookies)

    def test_unknown_session_cookie_is_replaced(self):
        self.client.cookies.set(get_settings().SESSION_COOKIE_NAME, "chosen-by-client")
        response = self.client.get("/")
        self.assertNotEqual(response.cookies.get(get_settings().SESSION_COOKIE_NAME), "chosen-by-client")
        self.assertIsNone(get_session_registry().get("chosen-by-client"))

    def test_signup_flow(self):
        response = self.client.post("/actions/show-signup")
        self.assertIn('data-view="signup"', response.text)

        response = self.client.post("/actions/signup", data={
            "email": "a@b.com", "password": "secret1", "confirm_password": "secret2",
        })
        self.assertIn("Passwords do not match", response.text)

        response = self.client.post("/actions/signup", data={
            "email": "a@b.com", "password": "secret1", "confirm_password": "secret1",
        })
        self.assertIn('data-view="dashboard"', response.text)
        self.assertIn("All messages", response.text)

    def test_post_with_link(self):
        self.client.get("/")
        self.client.post("/actions/signup", data={
            "email": "a@b.com", "password": "secret1", "confirm_password": "secret1",
        })
        response = self.client.post("/actions/posts", data={"content": "look https://github.com/user/my-cool-project"})
        self.assertIn("Post created successfully!", response.text)
        self.assertIn('href="https://github.com/user/my-cool-project"', response.text)
        self.assertIn("My Cool Project", response.text)

    def test_categories_and_logout(self):
        self.client.post("/actions/signup", data={
            "email": "a@b.com", "password": "secret1", "confirm_password": "secret1",
        })
        self.client.post("/actions/categories", data={"name": "News"})
        response = self.client.post("/actions/select-category", data={"category": "News"})
        self.assertIn("Share in News", response.text)

        response = self.client.post("/actions/logout")
        self.assertIn('data-view="login"', response.text)
        self.assertEqual(get_memory_backend().listener_count, 0)

    def test_login_error(self):
        self.register()
        self.client.post("/api/v1/auth/logout")
        response = self.client.post("/actions/login", data={"email": "a@b.com", "password": "wrong-one"})
        self.assertIn("Invalid email or password", response.text)


class AuthApiTests(ApiTestCase):
    def test_register_and_me(self):
        response = self.register()
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["email"], "a@b.com")

        me = self.client.get("/api/v1/auth/me").json()
        self.assertTrue(me["logged_in"])
        self.assertEqual(me["user"]["id"], response.json()["id"])
        self.assertEqual(me["profile"]["email"], "a@b.com")
        self.assertIsNotNone(me["profile"]["created_at"])

    def test_register_validation(self):
        response = self.client.post("/api/v1/auth/register", json={"email": "nope", "password": "secret1"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Please enter a valid email address")

        response = self.client.post(
            "/api/v1/auth/register",
            json={"email": "a@b.com", "password": "secret1", "confirm_password": "secret2"},
        )
        self.assertEqual(response.json()["detail"], "Passwords do not match")

    def test_duplicate_account(self):
        self.register()
        other = TestClient(app)
        response = other.post("/api/v1/auth/register", json={"email": "a@b.com", "password": "secret1"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "An account with this email already exists")

    def test_short_password_is_rejected_before_the_provider(self):
        backend = get_memory_backend()
        with patch.object(backend, "create_account", wraps=backend.create_account) as create_account:
            response = self.client.post("/api/v1/auth/register", json={"email": "c@d.com", "password": "123"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Password must be at least 6 characters long")
        create_account.assert_not_called()
        self.assertEqual(backend.accounts, {})

    def test_login_logout(self):
        self.register()
        self.assertEqual(self.client.post("/api/v1/auth/logout").status_code, 204)
        self.assertFalse(self.client.get("/api/v1/auth/me").json()["logged_in"])
        self.assertEqual(self.client.post("/api/v1/auth/logout").status_code, 401)

        response = self.client.post("/api/v1/auth/login", json={"email": "a@b.com", "password": "wrong-one"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Invalid email or password")

        response = self.client.post("/api/v1/auth/login", json={"email": "a@b.com", "password": "secret1"})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(self.client.get("/api/v1/auth/me").json()["logged_in"])


class FeedApiTests(ApiTestCase):
    def test_requires_authentication(self):
        response = self.client.post("/api/v1/feed/posts", json={"content": "hello"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "User must be authenticated to create posts")
        self.assertEqual(self.client.get("/api/v1/feed/posts").status_code, 401)

    def test_post_validation(self):
        self.register()
        response = self.client.post("/api/v1/feed/posts", json={"content": "  "})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Post content cannot be empty")

        response = self.client.post("/api/v1/feed/posts", json={"content": "x" * 501})
        self.assertEqual(response.status_code, 400)

    def test_create_and_list_posts(self):
        self.register()
        response = self.client.post("/api/v1/feed/posts", json={"content": "first"})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["category"], "General")
        self.client.post("/api/v1/feed/posts", json={"content": "second", "category": "News"})

        posts = self.client.get("/api/v1/feed/posts").json()
        self.assertEqual([p["content"] for p in posts], ["second", "first"])
        news = self.client.get("/api/v1/feed/posts", params={"category": "News"}).json()
        self.assertEqual([p["content"] for p in news], ["second"])
        self.assertEqual(len(self.client.get("/api/v1/feed/posts", params={"limit": 1}).json()), 1)
        self.assertEqual(self.client.get("/api/v1/feed/posts", params={"limit": 0}).status_code, 422)

    def test_categories(self):
        self.register()
        self.assertEqual(self.client.post("/api/v1/feed/categories", json={"name": "News"}).status_code, 201)
        self.client.post("/api/v1/feed/categories", json={"name": "Sports"})
        self.assertEqual(self.client.post("/api/v1/feed/categories", json={"name": " "}).status_code, 400)
        names = [c["name"] for c in self.client.get("/api/v1/feed/categories").json()]
        self.assertEqual(names, ["News", "Sports"])

    def test_all_is_stored_as_general(self):
        self.register()
        response = self.client.post("/api/v1/feed/posts", json={"content": "hello", "category": "All"})
        self.assertEqual(response.json()["category"], "General")
        general = self.client.get("/api/v1/feed/posts", params={"category": "General"}).json()
        self.assertEqual([p["content"] for p in general], ["hello"])


def _event_data(event):
    header, data = event.strip().splitlines()
    if header != "event: refresh":
        raise AssertionError(f"unexpected event {event!r}")
    return json.loads(data[len("data: "):])


class EventStreamTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.backend = InMemoryBackend()
        self.disconnected = False

    def signed_in_controller(self, email):
        controller = ViewController(FeedGateway(InMemoryProvider(self.backend)))
        controller.start()
        self.assertTrue(controller.submit_signup(email, "secret1", "secret1"))
        self.addCleanup(controller.dispose)
        return controller

    async def is_disconnected(self):
        return self.disconnected

    async def test_new_posts_are_pushed_until_disconnect(self):
        alice = self.signed_in_controller("alice@mail.com")
        bob = self.signed_in_controller("bob@mail.com")
        stream = refresh_events(bob, self.is_disconnected, keep_alive=5)

        first = _event_data(await stream.__anext__())
        self.assertEqual(first["view"], "dashboard")
        self.assertNotIn("hi bob", first["posts_html"])
        self.assertTrue(bob.has_listeners)

        self.assertTrue(alice.submit_post("hi bob"))
        update = _event_data(await asyncio.wait_for(stream.__anext__(), timeout=5))
        self.assertIn("hi bob", update["posts_html"])

        self.disconnected = True
        with self.assertRaises(StopAsyncIteration):
            await stream.__anext__()
        self.assertFalse(bob.has_listeners)

    async def test_idle_stream_sends_keep_alive(self):
        bob = self.signed_in_controller("bob@mail.com")
        stream = refresh_events(bob, self.is_disconnected, keep_alive=0.01)
        await stream.__anext__()
        self.assertEqual(await stream.__anext__(), ": keep-alive\n\n")
        await stream.aclose()
        self.assertFalse(bob.has_listeners)


if __name__ == "__main__":
    unittest.main()
