"""Template rendering engine for Folio.

This module uses Jinja2 to render pages and listings inside their layouts.
Site layouts and partials take precedence over the built-in ones shipped
with the package, so a blog only needs to override what it changes.

Key class:
- TemplateEngine: Handles template rendering and provides context to templates.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from jinja2 import (
    Environment,
    FileSystemLoader,
    Template,
    TemplateNotFound,
    select_autoescape,
)
from markupsafe import Markup, escape
from pygments.formatters import HtmlFormatter

from .asset_resolver import AssetNotFoundError, DefaultAssetPathResolver
from .collections import PageCollection, TaxonomyCollection
from .content import Heading, Page
from .feeds import rfc822
from .listings import Listing
from .projects import Project
from .shortcodes import BUILTIN_SITE_DIR
from .html_utils import join_root_url

__all__ = ["AssetNotFoundError", "TemplateEngine", "render_toc"]

LAYOUT_SUFFIXES = (".html.jinja", ".jinja", ".html", "")


def render_toc(page: Page) -> Markup:
    """Render a table of contents as nested HTML from page headings.

    Args:
        page: Page object containing the toc (list of Heading objects).

    Returns:
        Markup-safe nested ``<ul>`` list, or empty Markup if no headings.
    """
    if not page.toc:
        return Markup("")
    return _render_toc_from_headings(page.toc)


def _render_toc_from_headings(headings: list[Heading]) -> Markup:
    html_parts: list[str] = []
    level_stack: list[int] = []

    for heading in headings:
        level = heading.level

        while level_stack and level_stack[-1] > level:
            level_stack.pop()
            html_parts.append("</li></ul>")

        if level_stack and level_stack[-1] == level:
            html_parts.append("</li>")
        elif not level_stack or level > level_stack[-1]:  # pragma: no branch
            html_parts.append("<ul>")
            level_stack.append(level)

        html_parts.append(f'<li><a href="#{escape(heading.id)}">{escape(heading.text)}</a>')

    while level_stack:
        level_stack.pop()
        html_parts.append("</li></ul>")

    return Markup("".join(html_parts))


def datefmt(value: datetime, fmt: str = "%B %-d, %Y") -> str:
    """Format a date for display; ``%-d`` drops the day's leading zero."""
    if "%-d" in fmt:
        fmt = fmt.replace("%-d", str(value.day))
    return value.strftime(fmt)


class TemplateEngine:
    """Template rendering engine using Jinja2.

    Attributes:
        site_dir: Directory containing content and templates.
        data: Global site data.
        env: Jinja2 environment.
        pages: All pages.
        taxonomies: Taxonomy name to TaxonomyCollection.
        projects: Project gallery entries.
        asset_resolver: Resolver for asset paths.
    """

    def __init__(
        self,
        site_dir: Path,
        data: dict[str, Any],
        root_url: str | None = None,
        asset_resolver: DefaultAssetPathResolver | None = None,
        projects: Iterable[Project] = (),
    ):
        self.site_dir = site_dir
        self.data = data
        self.root_url = (root_url or data.get("root_url") or "") if isinstance(data, dict) else ""
        self.env = Environment(
            loader=FileSystemLoader(
                [
                    site_dir / "_layouts",
                    site_dir / "_partials",
                    site_dir,
                    BUILTIN_SITE_DIR / "_layouts",
                    BUILTIN_SITE_DIR / "_partials",
                ]
            ),
            autoescape=select_autoescape(["html", "xml", "html.jinja"]),
        )
        self.env.filters["datefmt"] = datefmt
        self.env.filters["rfc822"] = rfc822
        self.pages: PageCollection = PageCollection([])
        self.taxonomies: dict[str, TaxonomyCollection] = {}
        self.projects = list(projects)

        self.asset_resolver = asset_resolver or DefaultAssetPathResolver(
            site_dir.parent / "assets"
        )
        self.asset_resolver.set_url_generator(self._url_for)

        self._install_globals()

    def _install_globals(self) -> None:
        self.env.globals.update(
            data=self.data,
            pages=self.pages,
            taxonomies=self.taxonomies,
            tags=self.taxonomies.get("tags", {}),
            projects=self.projects,
            url_for=self._url_for,
            pygments_css=self._pygments_css,
            js_path=self.asset_resolver.js_path,
            css_path=self.asset_resolver.css_path,
            img_path=self.asset_resolver.img_path,
            font_path=self.asset_resolver.font_path,
            video_path=self.asset_resolver.video_path,
            render_toc=render_toc,
        )

    @staticmethod
    def _pygments_css(style: str = "default") -> str:
        """Return Pygments CSS rules for the ``.highlight`` class."""
        return HtmlFormatter(style=style).get_style_defs(".highlight")

    def update_collections(
        self,
        pages: Iterable[Page],
        taxonomies: Mapping[str, TaxonomyCollection],
    ) -> None:
        """Publish the page and taxonomy collections to templates."""
        self.pages = PageCollection(pages)
        self.taxonomies = dict(taxonomies)
        self._install_globals()

    def _url_for(self, path: str) -> str:
        """Generate a URL for a path, applying root_url if configured."""
        if path.startswith(("http://", "https://", "//")):
            return path
        local = path if path.startswith("/") else f"/{path}"
        if self.root_url:
            return join_root_url(self.root_url, local)
        return local

    def render_page(self, page: Page) -> str:
        """Render a page inside its layout."""
        context = self._context(page)
        body_html = self._render_body(page, context)
        return self._render_layout(page.layout, page_content=Markup(body_html), **context)

    def render_listing(self, listing: Listing) -> str:
        """Render a generated listing page inside its layout."""
        context = self._context(listing)
        context.update(
            listing=listing,
            paginator=listing.paginator,
            taxonomy=listing.taxonomy,
            term=listing.term,
        )
        return self._render_layout(listing.layout, page_content=Markup(""), **context)

    def _context(self, current: Page | Listing) -> dict[str, Any]:
        return {
            "current_page": current,
            "frontmatter": current.frontmatter,
            "listing": None,
            "paginator": None,
            "taxonomy": None,
            "term": "",
        }

    def _render_body(self, page: Page, context: dict[str, Any]) -> str:
        if page.source_type == "jinja":
            return self.env.from_string(page.content).render(**context)
        return page.content

    def _render_layout(self, layout: str, **context: Any) -> str:
        return self._resolve_layout_template(layout).render(**context)

    def _resolve_layout_template(self, layout: str) -> Template:
        """Find the layout template, falling back to ``default``."""
        names = [layout] if layout == "default" else [layout, "default"]
        for name in names:
            for suffix in LAYOUT_SUFFIXES:
                try:
                    return self.env.get_template(f"{name}{suffix}")
                except TemplateNotFound:
                    continue
        print(f"Layout '{layout}' not found; rendering page body only.")
        return self.env.from_string("{{ page_content }}")

    def render_string(self, template: str, context: dict[str, Any]) -> str:
        return self.env.from_string(template).render(**context)
