"""
HTML for the four views (loading, login, signup, dashboard) and the
live-updated fragments of the dashboard.

Every value interpolated here is either escaped with ``escape_html`` or is
markup produced by the formatter.
"""

from datetime import datetime
from typing import Iterable, Optional

from app.models.post import ALL_CATEGORIES, MAX_POST_LENGTH, Category, Post
from app.services.provider import AuthUser
from app.views.formatter import (
    anchor,
    escape_html,
    extract_urls,
    link_preview,
    linkify,
    time_ago,
)

APP_NAME = "ssaavvee"
CENTERED = "min-h-screen flex items-center justify-center py-12 px-4 sm:px-6 lg:px-8"
INPUT_CLASS = (
    "mt-1 appearance-none relative block w-full px-3 py-2 border border-gray-300 "
    "placeholder-gray-500 text-gray-900 focus:outline-none focus:ring-black focus:border-black sm:text-sm"
)
PRIMARY_BUTTON = (
    "group relative w-full flex justify-center py-2 px-4 border border-transparent text-sm "
    "font-medium text-white bg-black hover:bg-gray-800"
)
SECONDARY_BUTTON = (
    "w-full flex justify-center py-2 px-4 border border-black text-sm font-medium "
    "text-black bg-white hover:bg-gray-50"
)
CATEGORY_BUTTON = "w-full text-left px-3 py-2 text-sm text-custom-black border border-custom-grey hover:opacity-80 transition-opacity"

PAGE_HTML = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>__TITLE__</title>
  <script src="https://cdn.tailwindcss.com"></script>
  <script>
    tailwind.config = {theme: {extend: {colors: {
      'custom-blue': '#3b5bdb', 'custom-pink': '#f783ac', 'custom-green': '#8ce99a',
      'custom-grey': '#dee2e6', 'custom-black': '#212529', 'custom-white': '#ffffff'}}}};
  </script>
</head>
<body class="bg-gray-50">
  <div id="app-container" class="__CONTAINER_CLASS__" data-view="__VIEW__">
__BODY__
  </div>
  <script>
    (function () {
      var container = document.getElementById('app-container');
      var view = container.dataset.view;
      if (view === 'loading' || view === 'dashboard') {
        var source = new EventSource('/events');
        source.addEventListener('refresh', function (event) {
          var data = JSON.parse(event.data);
          if (data.view !== view) { source.close(); window.location.reload(); return; }
          if (view !== 'dashboard') { return; }
          var posts = document.getElementById('posts-container');
          var categories = document.getElementById('categories-list');
          if (posts) { posts.innerHTML = data.posts_html; }
          if (categories) { categories.innerHTML = data.categories_html; }
        });
      }
      var content = document.getElementById('post-content');
      var counter = document.getElementById('char-count');
      if (content && counter) {
        content.addEventListener('input', function () {
          var n = content.value.length;
          counter.textContent = n + '/__MAX_POST__';
          counter.className = n > 450 ? 'text-xs text-red-600 font-medium'
            : n > 350 ? 'text-xs text-custom-pink' : 'text-xs text-custom-black';
        });
      }
    })();
  </script>
</body>
</html>
"""


def render_page(view: str, body: str, container_class: str = CENTERED) -> str:
    return (
        PAGE_HTML.replace("__TITLE__", APP_NAME)
        .replace("__CONTAINER_CLASS__", container_class)
        .replace("__VIEW__", view)
        .replace("__MAX_POST__", str(MAX_POST_LENGTH))
        .replace("__BODY__", body)
    )


def _message(element_id: str, text: Optional[str], css: str) -> str:
    hidden = "" if text else " hidden"
    return f'<div id="{element_id}" class="{css}{hidden}">{escape_html(text)}</div>'


def render_loading() -> str:
    return """
    <div class="max-w-md w-full space-y-8">
      <div class="bg-custom-white p-8 border border-custom-grey">
        <div class="text-center">
          <div class="animate-spin h-12 w-12 border-b-2 border-custom-blue mx-auto"></div>
          <p class="mt-4 text-custom-black">Loading...</p>
        </div>
      </div>
    </div>"""


def render_error(message: str) -> str:
    return f"""
    <div class="max-w-md w-full bg-custom-white p-8 border border-custom-grey text-center">
      <h2 class="text-xl font-bold text-red-600">Initialization Error</h2>
      <p class="mt-2 text-sm text-custom-black">Failed to initialize backend services. Please check your configuration.</p>
      <p class="mt-2 text-xs text-gray-500">Error: {escape_html(message)}</p>
    </div>"""


def _email_field(email: str) -> str:
    return f"""
        <div>
          <label for="email" class="block text-sm font-medium text-gray-700">Email address</label>
          <input id="email" name="email" type="email" required class="{INPUT_CLASS}"
                 placeholder="Enter your email" value="{escape_html(email)}">
        </div>"""


def render_login(error: Optional[str] = None, email: str = "") -> str:
    return f"""
    <div class="max-w-md w-full space-y-8">
      <div>
        <h2 class="mt-6 text-center text-3xl font-bold text-gray-900">Sign in to your account</h2>
      </div>
      <form id="login-form" class="mt-8 space-y-6" method="post" action="/actions/login">
        <div class="space-y-4">{_email_field(email)}
          <div>
            <label for="password" class="block text-sm font-medium text-gray-700">Password</label>
            <input id="password" name="password" type="password" required class="{INPUT_CLASS}"
                   placeholder="Enter your password">
          </div>
        </div>
        {_message("login-error", error, "text-red-600 text-sm")}
        <button type="submit" id="login-submit-btn" class="{PRIMARY_BUTTON}">Sign in</button>
      </form>
      <form method="post" action="/actions/show-signup">
        <button type="submit" id="go-to-signup" class="{SECONDARY_BUTTON}">Don't have an account? Sign up</button>
      </form>
    </div>"""


def render_signup(error: Optional[str] = None, email: str = "") -> str:
    return f"""
    <div class="max-w-md w-full space-y-8">
      <div>
        <h2 class="mt-6 text-center text-3xl font-bold text-gray-900">Create your account</h2>
      </div>
      <form id="signup-form" class="mt-8 space-y-6" method="post" action="/actions/signup">
        <div class="space-y-4">{_email_field(email)}
          <div>
            <label for="password" class="block text-sm font-medium text-gray-700">Password</label>
            <input id="password" name="password" type="password" required class="{INPUT_CLASS}"
                   placeholder="Create a password (6+ characters)">
          </div>
          <div>
            <label for="confirm-password" class="block text-sm font-medium text-gray-700">Confirm Password</label>
            <input id="confirm-password" name="confirm_password" type="password" required class="{INPUT_CLASS}"
                   placeholder="Confirm your password">
          </div>
        </div>
        {_message("signup-error", error, "text-red-600 text-sm")}
        <button type="submit" id="signup-submit-btn" class="{PRIMARY_BUTTON}">Create account</button>
      </form>
      <form method="post" action="/actions/show-login">
        <button type="submit" id="go-to-login" class="{SECONDARY_BUTTON}">Already have an account? Sign in</button>
      </form>
    </div>"""


def render_link_preview(url: str) -> str:
    preview = link_preview(url)
    if preview is None:
        return f"""
                <div class="mt-3 border border-custom-grey bg-custom-white p-3">
                  <div class="text-sm text-custom-black">{anchor(url, "text-custom-blue underline hover:opacity-80")}</div>
                </div>"""
    return f"""
                <a href="{escape_html(preview.url)}" target="_blank" rel="noopener noreferrer"
                   class="mt-3 flex items-start space-x-3 border border-custom-grey bg-custom-white p-3 hover:opacity-80">
                  <div class="w-10 h-10 bg-custom-blue text-custom-white flex items-center justify-center font-bold">{escape_html(preview.initial)}</div>
                  <div class="flex-1 min-w-0">
                    <div class="text-sm font-medium text-custom-black mb-1">{escape_html(preview.title)}</div>
                    <div class="text-xs text-custom-black opacity-75 mb-2">{escape_html(preview.domain)}</div>
                    <div class="text-xs text-custom-blue truncate">{escape_html(preview.url)}</div>
                  </div>
                </a>"""


def render_post(post: Post, now: Optional[datetime] = None) -> str:
    previews = "".join(render_link_preview(url) for url in extract_urls(post.content))
    return f"""
            <div class="border border-custom-grey p-5 bg-custom-white" data-post-id="{escape_html(post.id)}">
              <div class="flex justify-between items-start mb-3">
                <span class="text-xs px-2 py-1 bg-custom-blue text-custom-white">{escape_html(post.category)}</span>
                <div class="text-xs text-custom-black">{time_ago(post.created_at, now)}</div>
              </div>
              <div class="text-sm text-custom-black whitespace-pre-wrap leading-relaxed">{linkify(post.content)}</div>{previews}
            </div>"""


def render_posts(posts: Optional[Iterable[Post]], now: Optional[datetime] = None) -> str:
    if posts is None:
        return """
            <div class="text-center py-8 text-custom-black">
              <p>Loading posts...</p>
            </div>"""
    posts = list(posts)
    if not posts:
        return """
            <div class="text-center py-8 text-custom-black">
              <p>No posts yet. Be the first to share something!</p>
            </div>"""
    return "".join(render_post(post, now) for post in posts)


def render_feed_error(message: str) -> str:
    return f"""
            <div class="text-center py-8 text-red-600">
              <p>{escape_html(message)}</p>
            </div>"""


def _category_class(selected: bool) -> str:
    return f"{CATEGORY_BUTTON} {'bg-custom-blue' if selected else 'bg-custom-white'}"


def render_categories(categories: Iterable[Category], selected: str) -> str:
    buttons = []
    for category in categories:
        name = escape_html(category.name)
        buttons.append(f"""
              <form method="post" action="/actions/select-category">
                <input type="hidden" name="category" value="{name}">
                <button type="submit" data-category="{name}" class="category-btn {_category_class(category.name == selected)}">{name}</button>
              </form>""")
    return "".join(buttons)


def render_dashboard(
    user: AuthUser,
    selected_category: str,
    posts_html: str,
    categories_html: str,
    post_label: str,
    post_error: Optional[str] = None,
    post_success: Optional[str] = None,
    category_error: Optional[str] = None,
) -> str:
    verified = "bg-custom-green" if user.email_verified else "bg-custom-pink"
    last_sign_in = user.last_sign_in.strftime("%m/%d/%Y") if user.last_sign_in else "N/A"
    return f"""
    <div class="min-h-screen grid grid-cols-7 gap-6 p-6">
      <div class="col-span-1 bg-custom-white border border-custom-grey p-6 h-fit">
        <div class="space-y-6">
          <h1 class="text-2xl font-bold text-custom-blue">{APP_NAME}</h1>
          <div class="space-y-3">
            <h3 class="text-sm font-semibold text-custom-black uppercase tracking-wide">Account</h3>
            <div class="bg-custom-white p-3 border border-custom-grey">
              <p class="text-sm text-custom-black break-words font-medium">{escape_html(user.email)}</p>
              <p class="text-xs text-custom-black mt-1">ID: {escape_html(user.uid[:8])}...</p>
            </div>
          </div>
          <div class="space-y-3">
            <h3 class="text-sm font-semibold text-custom-black uppercase tracking-wide">Categories</h3>
            <div class="space-y-2">
              <form method="post" action="/actions/select-category">
                <input type="hidden" name="category" value="{ALL_CATEGORIES}">
                <button type="submit" id="category-all" class="{_category_class(selected_category == ALL_CATEGORIES)}">All messages</button>
              </form>
              <div id="categories-list" class="space-y-2">{categories_html}</div>
              <form method="post" action="/actions/categories" class="space-y-2">
                <input name="name" type="text" required placeholder="New category" class="{INPUT_CLASS}">
                <button type="submit" id="add-category-btn"
                        class="w-full flex justify-center py-2 px-3 border border-custom-grey text-sm font-medium text-custom-black bg-custom-green hover:opacity-80">+ Add Category</button>
              </form>
              {_message("category-error", category_error, "text-red-600 text-xs")}
            </div>
          </div>
          <div class="space-y-2">
            <div class="flex items-center justify-between">
              <span class="text-xs text-custom-black">Email Verified</span>
              <span class="text-xs px-2 py-1 {verified} text-custom-black">{"Yes" if user.email_verified else "No"}</span>
            </div>
            <div class="text-xs text-custom-black"><strong>Last Sign In:</strong><br>{last_sign_in}</div>
          </div>
          <form method="post" action="/actions/logout">
            <button type="submit" id="logout-btn"
                    class="w-full flex justify-center py-3 px-4 border border-custom-grey text-sm font-medium text-custom-black bg-custom-pink hover:opacity-80">Logout</button>
          </form>
        </div>
      </div>
      <div class="col-span-3 space-y-6">
        <div class="bg-custom-white border border-custom-grey p-6">
          <form id="post-form" method="post" action="/actions/posts" class="space-y-4">
            <label for="post-content" id="post-label" class="block text-sm font-semibold text-custom-black mb-3">{escape_html(post_label)}</label>
            <textarea id="post-content" name="content" rows="3" maxlength="{MAX_POST_LENGTH}"
                      placeholder="Share something wonderful..." class="w-full p-3 border border-custom-grey"></textarea>
            <div class="flex justify-between items-center">
              <span id="char-count" class="text-xs text-custom-black">0/{MAX_POST_LENGTH}</span>
              <button type="submit" id="post-submit-btn" class="px-6 py-2 text-sm font-medium text-custom-white bg-custom-blue hover:opacity-80">Post</button>
            </div>
            {_message("post-error", post_error, "text-red-600 text-sm p-3 bg-red-50 border border-red-200")}
            {_message("post-success", post_success, "text-green-700 text-sm p-3 bg-green-50 border border-green-200")}
          </form>
        </div>
        <div class="bg-custom-white border border-custom-grey p-6">
          <h2 class="text-lg font-semibold text-custom-black mb-4">Recent Posts</h2>
          <div id="posts-container" class="space-y-4">{posts_html}</div>
        </div>
      </div>
      <div class="col-span-3 bg-custom-white border border-custom-grey p-6">
        <div class="h-full flex items-center justify-center">
          <div class="text-center text-custom-black">
            <h2 class="text-lg font-semibold mb-2 text-custom-black">Details</h2>
            <p class="text-sm text-custom-black">Additional information will appear here</p>
          </div>
        </div>
      </div>
    </div>"""
