"""
Turns user-supplied post text into safe HTML.

All text is escaped before it reaches markup. URLs are detected on the raw
text, so escaping never changes what counts as a URL.
"""

import html
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import unquote, urlsplit

from app.models.user import EMAIL_RE, MIN_PASSWORD_LENGTH

URL_RE = re.compile(r"https?://[^\s<>\"']+[^\s<>\"'.,!?;:]")
EXTENSION_RE = re.compile(r"\.[^/.]+$")

LINK_CLASS = "text-custom-blue underline hover:opacity-80 font-medium"


@dataclass
class LinkPreview:
    url: str
    domain: str
    title: str

    @property
    def initial(self) -> str:
        return self.domain[:1].upper()


def escape_html(text: Optional[str]) -> str:
    return html.escape(text or "", quote=True)


def extract_urls(text: Optional[str]) -> List[str]:
    return URL_RE.findall(text or "")


def anchor(url: str, css_class: str = LINK_CLASS) -> str:
    safe = escape_html(url)
    return f'<a href="{safe}" target="_blank" rel="noopener noreferrer" class="{css_class}">{safe}</a>'


def linkify(text: Optional[str]) -> str:
    """Escape ``text`` and wrap every URL in a new-tab anchor."""
    text = text or ""
    parts = []
    last = 0
    for match in URL_RE.finditer(text):
        parts.append(escape_html(text[last:match.start()]))
        parts.append(anchor(match.group(0)))
        last = match.end()
    parts.append(escape_html(text[last:]))
    return "".join(parts)


def _humanize(segment: str) -> str:
    words = EXTENSION_RE.sub("", re.sub(r"[-_]", " ", unquote(segment))).split(" ")
    return " ".join(word[:1].upper() + word[1:] for word in words)


def link_preview(url: str) -> Optional[LinkPreview]:
    """Build a preview card from the URL alone; ``None`` if it has no usable host.

    Nothing is fetched: the title is the last path segment, humanized, or the
    domain when there is no path.
    """
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        return None
    if not hostname:
        return None

    domain = hostname[4:] if hostname.startswith("www.") else hostname
    title = domain
    segments = [part for part in parts.path.split("/") if part]
    if segments:
        title = _humanize(segments[-1]) or domain
    return LinkPreview(url=url, domain=domain, title=title)


def time_ago(created_at: Optional[datetime], now: Optional[datetime] = None) -> str:
    # A missing timestamp means the server has not resolved it yet.
    if created_at is None:
        return "just now"
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    seconds = int((now - created_at).total_seconds())

    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    if seconds < 604800:
        return f"{seconds // 86400}d ago"
    return created_at.strftime("%m/%d/%Y")


def is_valid_email(email: Optional[str]) -> bool:
    return bool(EMAIL_RE.match(email or ""))


def signup_error(email: str, password: str, confirm_password: Optional[str] = None) -> Optional[str]:
    """First problem with a sign-up form, checked before any provider call.

    A ``confirm_password`` of ``None`` skips the confirmation check.
    """
    if not is_valid_email(email):
        return "Please enter a valid email address"
    if len(password or "") < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    if confirm_password is not None and password != confirm_password:
        return "Passwords do not match"
    return None


def char_count_class(length: int) -> str:
    """CSS class for the composer's ``n/500`` counter."""
    if length > 450:
        return "text-xs text-red-600 font-medium"
    if length > 350:
        return "text-xs text-custom-pink"
    return "text-xs text-custom-black"
