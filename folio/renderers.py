"""Content renderers for Folio.

Each renderer handles one source type and turns the page body into HTML
plus the list of headings used for the table of contents.

Key classes:
- MarkdownRenderer: Markdown to HTML with shortcodes and syntax highlighting.
- HTMLRenderer: Passes through HTML content.
- JinjaContentRenderer: Defers Jinja pages to the TemplateEngine.
- RendererRegistry: Picks the renderer for a source file.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING

import mistune
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .html_utils import escape_html
from .shortcodes import Expansion, ShortcodeProcessor
from .utils import is_html, is_markdown, is_template, media_url

if TYPE_CHECKING:
    from .content import Heading

MARKDOWN_PLUGINS = ["strikethrough", "footnotes", "table", "url", "math"]


def generate_heading_id(text: str) -> str:
    """Generate a URL-friendly ID from heading text.

    Examples:
        >>> generate_heading_id("Using <code>@State</code> & Bindings")
        'using-state-bindings'
    """
    slug = re.sub(r"<[^>]+>", "", text).lower().strip()
    slug = re.sub(r"&[a-z]+;|&#\d+;", "", slug)
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-") or "section"


class _HighlightRenderer(mistune.HTMLRenderer):
    """mistune renderer with heading anchors, image paths and Pygments.

    Attributes:
        folder: Folder containing the page being rendered.
        headings: Headings collected during rendering.
        expansion: Shortcode placeholders to restore inside headings, if any.
    """

    def __init__(self, folder: str, expansion: Expansion | None = None):
        super().__init__(escape=False)
        self.folder = folder
        self.expansion = expansion
        self.headings: list[Heading] = []
        self._heading_id_counts: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        if self.expansion:
            text = self.expansion.restore(text)
        base_id = generate_heading_id(text)
        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id

        from .content import Heading

        plain = " ".join(re.sub(r"<[^>]+>", "", text).split())
        self.headings.append(Heading(id=heading_id, text=plain, level=level))
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def image(self, text: str, url: str, title: str | None = None) -> str:
        return super().image(text, media_url(url, self.folder), title)

    def block_code(self, code: str, info: str | None = None) -> str:
        lang = info.split()[0] if info and info.strip() else ""
        if lang:
            try:
                lexer = get_lexer_by_name(lang, stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                return highlight(code, lexer, HtmlFormatter(cssclass="highlight"))
        lang_class = f' class="language-{escape_html(lang)}"' if lang else ""
        return f"<pre><code{lang_class}>{escape_html(code)}</code></pre>\n"


class MarkdownRenderer:
    """Renders Markdown content to HTML.

    Shortcodes are expanded before parsing when a ShortcodeProcessor is
    available.
    """

    source_type = "markdown"

    def __init__(self, shortcodes: ShortcodeProcessor | None = None):
        self.shortcodes = shortcodes

    def can_render(self, path: Path) -> bool:
        return is_markdown(path)

    def render(self, content: str, folder: str) -> tuple[str, list[Heading]]:
        """Render Markdown content to HTML.

        Raises:
            ShortcodeError: If a shortcode in ``content`` is invalid.
        """
        expansion = self.shortcodes.expand(content, folder) if self.shortcodes else None
        source = expansion.text if expansion else content
        renderer = _HighlightRenderer(folder, expansion)
        markdown = mistune.create_markdown(renderer=renderer, plugins=MARKDOWN_PLUGINS)
        html = markdown(source)
        if expansion:
            html = expansion.restore(html)
        return html, renderer.headings


class HTMLRenderer:
    """Passes plain HTML files through unchanged."""

    source_type = "html"

    def can_render(self, path: Path) -> bool:
        return is_html(path)

    def render(self, content: str, folder: str) -> tuple[str, list[Heading]]:
        return content, []


class JinjaContentRenderer:
    """Identifies Jinja pages; the TemplateEngine renders them later."""

    source_type = "jinja"

    def can_render(self, path: Path) -> bool:
        return is_template(path)

    def render(self, content: str, folder: str) -> tuple[str, list[Heading]]:
        return content, []


class RendererRegistry:
    """Registry for content renderers, checked in registration order."""

    def __init__(self, shortcodes: ShortcodeProcessor | None = None):
        self._renderers: list = []
        self.register(MarkdownRenderer(shortcodes))
        self.register(JinjaContentRenderer())
        self.register(HTMLRenderer())

    def register(self, renderer) -> None:
        self._renderers.append(renderer)

    def get_renderer(self, path: Path):
        """Return the first renderer that can handle ``path``, or None."""
        for renderer in self._renderers:
            if renderer.can_render(path):
                return renderer
        return None
