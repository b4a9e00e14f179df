import unittest
from datetime import datetime, timedelta, timezone

from app.views.formatter import (
    char_count_class,
    escape_html,
    extract_urls,
    is_valid_email,
    link_preview,
    linkify,
    signup_error,
    time_ago,
)


class EscapingTests(unittest.TestCase):
    def test_markup_is_escaped(self):
        rendered = linkify('<script>alert("x")</script> & <b>bold</b>')
        self.assertNotIn("<script>", rendered)
        self.assertNotIn("<b>", rendered)
        self.assertIn("&lt;script&gt;", rendered)
        self.assertIn("&amp;", rendered)
        self.assertIn("&quot;x&quot;", rendered)

    def test_plain_text_is_unchanged(self):
        self.assertEqual(linkify("hello world, no links here"), "hello world, no links here")

    def test_escape_handles_none(self):
        self.assertEqual(escape_html(None), "")


class UrlTests(unittest.TestCase):
    def test_trailing_punctuation_is_not_part_of_url(self):
        self.assertEqual(extract_urls("Visit http://x.io/page. Or https://y.io/a?b=1!"), [
            "http://x.io/page",
            "https://y.io/a?b=1",
        ])

    def test_every_url_is_wrapped_and_other_text_kept(self):
        rendered = linkify("see https://example.org/a-b, then http://test.io ok")
        self.assertTrue(rendered.startswith("see <a href=\"https://example.org/a-b\""))
        self.assertIn('target="_blank" rel="noopener noreferrer"', rendered)
        self.assertIn(">https://example.org/a-b</a>, then <a href=\"http://test.io\"", rendered)
        self.assertTrue(rendered.endswith("</a> ok"))
        self.assertEqual(rendered.count("<a "), 2)

    def test_quotes_end_a_url(self):
        rendered = linkify('"http://a.com"')
        self.assertEqual(rendered.count("<a "), 1)
        self.assertIn('href="http://a.com"', rendered)
        self.assertTrue(rendered.startswith("&quot;<a"))

    def test_ampersand_in_url_is_escaped_in_markup(self):
        rendered = linkify("https://a.com/?x=1&y=2")
        self.assertIn('href="https://a.com/?x=1&amp;y=2"', rendered)

    def test_no_scheme_no_link(self):
        self.assertEqual(extract_urls("www.example.org and ftp://files.io"), [])


class LinkPreviewTests(unittest.TestCase):
    def test_title_from_last_path_segment(self):
        preview = link_preview("https://www.github.com/user/my-cool_project.html")
        self.assertEqual(preview.domain, "github.com")
        self.assertEqual(preview.title, "My Cool Project")
        self.assertEqual(preview.initial, "G")

    def test_title_falls_back_to_domain(self):
        preview = link_preview("https://news.site.io/")
        self.assertEqual(preview.title, "news.site.io")

    def test_percent_encoded_segment_is_decoded(self):
        preview = link_preview("https://blog.io/posts/hello%20world")
        self.assertEqual(preview.title, "Hello World")

    def test_malformed_url_has_no_preview(self):
        self.assertIsNone(link_preview("http://[::1"))
        self.assertIsNone(link_preview("http:///only-a-path"))


class TimeAgoTests(unittest.TestCase):
    def setUp(self):
        self.now = datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc)

    def test_buckets(self):
        self.assertEqual(time_ago(self.now - timedelta(seconds=30), self.now), "just now")
        self.assertEqual(time_ago(self.now - timedelta(minutes=5), self.now), "5m ago")
        self.assertEqual(time_ago(self.now - timedelta(hours=3), self.now), "3h ago")
        self.assertEqual(time_ago(self.now - timedelta(days=2), self.now), "2d ago")
        self.assertEqual(time_ago(self.now - timedelta(days=10), self.now), "05/10/2024")

    def test_pending_timestamp(self):
        self.assertEqual(time_ago(None, self.now), "just now")


class FormHelpersTests(unittest.TestCase):
    def test_email_pattern(self):
        self.assertTrue(is_valid_email("a@b.com"))
        self.assertFalse(is_valid_email("a@b"))
        self.assertFalse(is_valid_email("a b@c.com"))
        self.assertFalse(is_valid_email(""))

    def test_signup_checks_in_order(self):
        self.assertEqual(signup_error("nope", "abc", "xyz"), "Please enter a valid email address")
        self.assertEqual(signup_error("a@b.com", "abc", "abc"), "Password must be at least 6 characters long")
        self.assertEqual(signup_error("a@b.com", "secret1", "secret2"), "Passwords do not match")
        self.assertIsNone(signup_error("a@b.com", "secret1", "secret1"))
        self.assertIsNone(signup_error("a@b.com", "secret1"))

    def test_char_count_thresholds(self):
        self.assertEqual(char_count_class(10), "text-xs text-custom-black")
        self.assertEqual(char_count_class(351), "text-xs text-custom-pink")
        self.assertEqual(char_count_class(451), "text-xs text-red-600 font-medium")


if __name__ == "__main__":
    unittest.main()
