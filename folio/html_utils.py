"""HTML utility functions for Folio.

Functions:
    escape_html: Escape special HTML characters in a string.
    join_root_url: Join a base URL with a path.
    absolutize_html_urls: Convert root-relative URLs to absolute in HTML.
    find_url_references: List the URL attributes found in HTML.
    is_local_url: Tell site-internal URLs from external ones.
"""

from __future__ import annotations

import re

_URL_ATTR_RE = re.compile(
    r'(?P<prefix>\b(?P<attr>href|src|poster|action)=["\'])(?P<url>[^"\']+)(?P<suffix>["\'])'
)

# URL prefixes that never point into the built site
_URL_SKIP_PREFIXES = (
    "http://",
    "https://",
    "//",
    "mailto:",
    "tel:",
    "#",
    "javascript:",
    "data:",
)


def escape_html(text: str) -> str:
    """Escape special HTML characters in a string.

    Examples:
        >>> escape_html('Tom & "Jerry"')
        'Tom &amp; &quot;Jerry&quot;'
    """
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def join_root_url(root_url: str, path: str) -> str:
    """Safely join a root URL and a path, avoiding double slashes.

    Examples:
        >>> join_root_url('https://example.com/', 'about')
        'https://example.com/about'
    """
    if not root_url:
        return path
    base = root_url.rstrip("/")
    suffix = path if path.startswith("/") else f"/{path}"
    return f"{base}{suffix}"


def is_local_url(url: str) -> bool:
    """Return True when ``url`` points into the site rather than elsewhere.

    Anchors, external schemes and protocol-relative URLs are not local.
    Template expressions left unrendered (``{{ ... }}``) are ignored too.
    """
    if not url or "{{" in url:
        return False
    if url.startswith(_URL_SKIP_PREFIXES):
        return False
    return not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*:", url)


def find_url_references(html: str) -> list[tuple[str, str]]:
    """Return ``(attribute, url)`` pairs for every URL attribute in ``html``.

    Examples:
        >>> find_url_references('<a href="/about/">x</a><img src="a.png">')
        [('href', '/about/'), ('src', 'a.png')]
    """
    return [(m.group("attr"), m.group("url")) for m in _URL_ATTR_RE.finditer(html)]


def absolutize_html_urls(html: str, root_url: str) -> str:
    """Rewrite root-relative URLs in HTML to absolute URLs.

    External URLs, anchors, mailto/tel links and relative paths are left
    unchanged.

    Examples:
        >>> absolutize_html_urls('<a href="/about">About</a>', 'https://example.com')
        '<a href="https://example.com/about">About</a>'
    """
    if not root_url:
        return html

    def repl(match: re.Match) -> str:
        url = match.group("url")
        if not url.startswith("/") or url.startswith("//"):
            return match.group(0)
        absolute = join_root_url(root_url, url)
        return f"{match.group('prefix')}{absolute}{match.group('suffix')}"

    return _URL_ATTR_RE.sub(repl, html)
