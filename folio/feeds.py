"""Feed generation for Folio.

Generates ``sitemap.xml`` and the RSS feed from the built pages. Both need
the absolute site URL (``url`` in ``data/site.yaml``) and are skipped
without it.

Output depends only on the content: the RSS ``lastBuildDate`` is the date
of the newest post, never the wall clock, so rebuilding unchanged content
produces identical files.

Classes:
    FeedGenerator: Base class for feed generators.
    SitemapGenerator: Generates sitemap.xml.
    RSSGenerator: Generates the RSS 2.0 feed.
    FeedRegistry: Runs every registered generator.

Functions:
    create_default_feed_registry: Create a registry with default generators.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import Any
from xml.sax.saxutils import escape

from .content import Page, sort_key


def rfc822(value: datetime) -> str:
    """Format a naive UTC datetime for RSS, e.g. ``Mon, 15 Jan 2024 00:00:00 +0000``."""
    return format_datetime(value.replace(tzinfo=timezone.utc))


class FeedGenerator(ABC):
    """Base class for feed generators."""

    @property
    @abstractmethod
    def filename(self) -> str:
        """Output filename such as 'sitemap.xml' or 'rss.xml'."""
        ...

    @abstractmethod
    def generate(self, pages: Sequence[Any], data: dict[str, Any]) -> str | None:
        """Generate feed content, or None when it cannot be generated."""
        ...

    def write(self, output_dir: Path, pages: Sequence[Any], data: dict[str, Any]) -> bool:
        """Generate and write the feed; return False if it was skipped."""
        content = self.generate(pages, data)
        if content is None:
            return False
        (output_dir / self.filename).write_text(content, encoding="utf-8")
        return True


class SitemapGenerator(FeedGenerator):
    """Lists every published page and listing, sorted by URL."""

    @property
    def filename(self) -> str:
        return "sitemap.xml"

    def generate(self, pages: Sequence[Any], data: dict[str, Any]) -> str | None:
        base_url = str(data.get("url", "")).rstrip("/")
        if not base_url:
            return None

        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
        ]
        for page in sorted(pages, key=lambda p: p.url):
            if page.draft:
                continue
            loc = escape(f"{base_url}{page.url}")
            lastmod = page.date.strftime("%Y-%m-%d")
            lines.append(f"  <url><loc>{loc}</loc><lastmod>{lastmod}</lastmod></url>")
        lines.append("</urlset>")
        return "\n".join(lines) + "\n"


class RSSGenerator(FeedGenerator):
    """RSS 2.0 feed of the newest posts.

    Attributes:
        sections: Sections whose pages are posts (default: ``posts``).
        limit: Maximum number of items.
    """

    def __init__(self, sections: Iterable[str] = ("posts",), limit: int = 20):
        self.sections = tuple(sections)
        self.limit = limit

    @property
    def filename(self) -> str:
        return "rss.xml"

    def select(self, pages: Sequence[Any]) -> list[Page]:
        """Published posts from the feed sections, newest first."""
        posts = [
            p
            for p in pages
            if getattr(p, "group", "") in self.sections
            and not p.draft
            and not getattr(p, "is_index", False)
        ]
        posts.sort(key=sort_key, reverse=True)
        return posts[: self.limit] if self.limit > 0 else posts

    def generate(self, pages: Sequence[Any], data: dict[str, Any]) -> str | None:
        base_url = str(data.get("url", "")).rstrip("/")
        if not base_url:
            return None
        title = str(data.get("title", "Folio Feed"))
        description = str(data.get("description", title))

        posts = self.select(pages)
        rss = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom"><channel>',
            f"<title>{escape(title)}</title>",
            f"<link>{escape(base_url)}/</link>",
            f"<description>{escape(description)}</description>",
            f'<atom:link href="{escape(base_url)}/{self.filename}" rel="self" type="application/rss+xml"/>',
        ]
        if posts:
            rss.append(f"<lastBuildDate>{rfc822(posts[0].date)}</lastBuildDate>")
        for page in posts:
            link = escape(f"{base_url}{page.url}")
            item = [
                f"<item><title>{escape(page.title)}</title>",
                f"<link>{link}</link>",
                f'<guid isPermaLink="true">{link}</guid>',
                f"<description>{escape(page.summary or page.title)}</description>",
            ]
            item.extend(f"<category>{escape(tag)}</category>" for tag in page.tags)
            item.append(f"<pubDate>{rfc822(page.date)}</pubDate></item>")
            rss.append("".join(item))
        rss.append("</channel></rss>")
        return "\n".join(rss) + "\n"


class FeedRegistry:
    """Registry of feed generators run at the end of a build."""

    def __init__(self) -> None:
        self._generators: list[FeedGenerator] = []

    def register(self, generator: FeedGenerator) -> None:
        self._generators.append(generator)

    def generate_all(
        self,
        output_dir: Path,
        pages: Iterable[Any],
        data: dict[str, Any],
    ) -> list[str]:
        """Generate all registered feeds; return the filenames written."""
        pages_list = list(pages)
        generated = []
        for generator in self._generators:
            if generator.write(output_dir, pages_list, data):
                generated.append(generator.filename)
        return generated


def create_default_feed_registry(
    sections: Iterable[str] = ("posts",), limit: int = 20
) -> FeedRegistry:
    """Create a registry with the sitemap and RSS generators."""
    registry = FeedRegistry()
    registry.register(SitemapGenerator())
    registry.register(RSSGenerator(sections, limit))
    return registry
