"""Content processing for Folio.

This module loads content files (Markdown, HTML and Jinja), extracts their
front-matter metadata, renders their bodies and creates Page objects.

Key classes:
- Page: Dataclass representing a post or page with all its metadata.
- Heading: Dataclass representing a heading for TOC generation.
- FileContentLoader: Discovers content files.
- LayoutResolver: Picks the layout template for a page.
- UrlDeriver: Derives the URL of a page from its location and slug.
- DefaultPageBuilder: Builds a Page from a source file.
- ContentProcessor: Loads every page, filters drafts, resolves
  cross-references and links neighbouring posts.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import quote

from .errors import BuildError
from .extractors import (
    CompositeMetadataExtractor,
    FrontmatterError,
    default_metadata_extractor,
)
from .renderers import RendererRegistry
from .shortcodes import BUILTIN_SITE_DIR, REF_SCHEME, ShortcodeError, ShortcodeProcessor
from .utils import (
    count_words,
    extract_number_from_name,
    is_html,
    is_markdown,
    is_template,
    media_url,
    slugify,
    source_stem,
    strip_number_prefix,
)

IMAGE_SRC_RE = re.compile(r'<img\s+[^>]*src="([^"]+)"', re.IGNORECASE)
REF_RE = re.compile(re.escape(REF_SCHEME) + r"(?P<target>[^\"'\s<>#]+)(?P<anchor>#[^\"'\s<>]*)?")
WORDS_PER_MINUTE = 220
LAYOUT_SUFFIXES = (".html.jinja", ".jinja", ".html")


@dataclass
class Heading:
    """A heading extracted from Markdown content for TOC generation.

    Attributes:
        id: Anchor ID for the heading.
        text: Plain text of the heading.
        level: Heading level (1-6).
    """

    id: str
    text: str
    level: int


@dataclass
class Page:
    """A post or page of the site.

    Attributes:
        title: Human-readable title of the page.
        body: Source text after the front-matter block.
        content: Rendered HTML content.
        summary: Short summary used on listings and in feeds.
        description: Summary cut to meta-description length.
        excerpt: First prose paragraph (Markdown files only).
        url: URL path for the page.
        slug: URL-friendly slug.
        date: Publication date.
        tags: Tags from front-matter.
        authors: Authors from front-matter.
        draft: Whether this is a draft page.
        layout: Layout template to use.
        group: Section the page belongs to (e.g. 'posts'), empty at the root.
        path: Path to the source file.
        folder: Folder path relative to the content directory.
        filename: Name of the source file.
        source_type: "markdown", "html" or "jinja".
        frontmatter: The raw front-matter mapping.
        toc: Headings for the table of contents.
        previous: The older neighbouring post in the same section.
        next: The newer neighbouring post in the same section.
    """

    title: str
    body: str
    content: str
    summary: str
    description: str
    excerpt: str
    url: str
    slug: str
    date: datetime
    tags: list[str]
    authors: list[str]
    draft: bool
    layout: str
    group: str
    path: Path
    folder: str
    filename: str
    source_type: str
    frontmatter: dict[str, Any] = field(default_factory=dict)
    toc: list[Heading] = field(default_factory=list)
    previous: Page | None = field(default=None, repr=False, compare=False)
    next: Page | None = field(default=None, repr=False, compare=False)

    @property
    def is_index(self) -> bool:
        return source_stem(self.path) == "index"

    @property
    def reading_time(self) -> int:
        """Estimated reading time in whole minutes (at least one)."""
        return max(1, math.ceil(count_words(self.body) / WORDS_PER_MINUTE))

    def terms(self, taxonomy: str) -> list[str]:
        """Return the page's terms for ``taxonomy`` ('tags' or 'authors')."""
        if taxonomy in ("tags", "authors"):
            return list(getattr(self, taxonomy))
        value = self.frontmatter.get(taxonomy) or []
        return [value] if isinstance(value, str) else [str(v) for v in value]


class FileContentLoader:
    """Discovers content files in a directory.

    Attributes:
        site_dir: Directory containing site content.
    """

    def __init__(self, site_dir: Path):
        self.site_dir = site_dir

    def iter_files(self) -> list[Path]:
        """Return every content file, sorted, skipping ``_`` directories.

        Draft files (``_name.md``) are returned; the processor decides
        whether to publish them.
        """
        files: list[Path] = []
        for path in sorted(self.site_dir.rglob("*")):
            if path.is_dir():
                continue
            rel = path.relative_to(self.site_dir)
            if any(part.startswith(("_", ".")) for part in rel.parts[:-1]):
                continue
            if is_markdown(path) or is_template(path) or is_html(path):
                files.append(path)
        return files


class LayoutResolver:
    """Resolves layout templates for pages.

    Layouts are looked up in the site's ``_layouts`` directory first and in
    the built-in layouts second.

    Attributes:
        site_dir: Directory containing site content and layouts.
        layout_dirs: Directories searched for layouts, in priority order.
    """

    def __init__(self, site_dir: Path):
        self.site_dir = site_dir
        self.layout_dirs = [site_dir / "_layouts", BUILTIN_SITE_DIR / "_layouts"]

    def find(self, name: str) -> Path | None:
        """Return the file that provides layout ``name``, or None."""
        for layout_dir in self.layout_dirs:
            for suffix in LAYOUT_SUFFIXES:
                candidate = layout_dir / f"{name}{suffix}"
                if candidate.exists():
                    return candidate
        return None

    def exists(self, name: str) -> bool:
        return self.find(name) is not None

    def resolve(self, path: Path, folder: str, frontmatter: dict[str, Any] | None = None) -> str:
        """Resolve the layout for a page.

        Candidates, most specific first:
        1. ``layout`` from front-matter
        2. ``{folder}/{name}``
        3. ``{group}`` then ``post`` for section pages
           (``page`` for a section index)
        4. ``{name}`` then ``page`` for root pages
        5. ``default``
        """
        if frontmatter and frontmatter.get("layout"):
            return frontmatter["layout"]
        name = source_stem(path)
        group = self.group_from_folder(folder)
        if folder:
            candidates = [f"{folder}/{name}"]
            candidates += ["page"] if name == "index" else [group, "post"]
        else:
            candidates = [name, "page"]
        for candidate in candidates:
            if self.exists(candidate):
                return candidate
        return "default"

    @staticmethod
    def group_from_folder(folder: str) -> str:
        if not folder:
            return ""
        return Path(folder).parts[0]


class UrlDeriver:
    """Derives URLs for pages from their location and slug."""

    def derive(self, rel: Path, slug: str) -> str:
        """Derive the URL for a page.

        Examples:
            ``index.md`` -> ``/``, ``posts/index.md`` -> ``/posts/``,
            ``posts/2024-01-15-hello.md`` -> ``/posts/hello/``.
            Non-ASCII segments are percent-encoded.
        """
        segments = [p for p in rel.parent.parts if p]
        url_parts = segments if source_stem(rel) == "index" else segments + [slug]
        path = quote("/".join(url_parts))
        return f"/{path}/" if path else "/"


class DefaultPageBuilder:
    """Builds Page objects from source files.

    Attributes:
        site_dir: Directory containing site content.
        renderer_registry: Registry of content renderers.
        metadata_extractor: Composite metadata extractor.
        layout_resolver: Layout resolver instance.
        url_deriver: URL deriver instance.
    """

    def __init__(
        self,
        site_dir: Path,
        renderer_registry: RendererRegistry | None = None,
        metadata_extractor: CompositeMetadataExtractor | None = None,
    ):
        self.site_dir = site_dir
        self.renderer_registry = renderer_registry or RendererRegistry(
            ShortcodeProcessor(site_dir)
        )
        self.metadata_extractor = metadata_extractor or default_metadata_extractor
        self.layout_resolver = LayoutResolver(site_dir)
        self.url_deriver = UrlDeriver()

    def build(self, path: Path) -> Page:
        """Build a Page object from a source file.

        Raises:
            FrontmatterError: If the front-matter is malformed.
            ShortcodeError: If a shortcode in the body is invalid.
        """
        rel = path.relative_to(self.site_dir)
        folder = rel.parent.as_posix() if rel.parent != Path(".") else ""
        raw = path.read_text(encoding="utf-8")

        metadata = self.metadata_extractor.extract(raw, path)
        frontmatter = metadata["frontmatter"]
        body = metadata["body"]

        renderer = self.renderer_registry.get_renderer(path)
        if renderer:
            source_type = renderer.source_type
            content, toc = renderer.render(body, folder)
        else:
            source_type = "unknown"
            content, toc = body, []

        slug = slugify(frontmatter.get("slug") or source_stem(path))
        return Page(
            title=metadata["title"],
            body=body,
            content=self._rewrite_inline_images(content, folder),
            summary=metadata["summary"],
            description=metadata["description"],
            excerpt=metadata["excerpt"],
            url=self.url_deriver.derive(rel, slug),
            slug=slug,
            date=metadata["date"],
            tags=metadata["tags"],
            authors=metadata["authors"],
            draft=metadata["draft"],
            layout=self.layout_resolver.resolve(path, folder, frontmatter),
            group=self.layout_resolver.group_from_folder(folder),
            path=path,
            folder=folder,
            filename=path.name,
            source_type=source_type,
            frontmatter=frontmatter,
            toc=toc,
        )

    def _rewrite_inline_images(self, html: str, folder: str) -> str:
        """Point relative ``<img src>`` values at ``/assets/images``."""

        def repl(match: re.Match) -> str:
            src = match.group(1)
            return match.group(0).replace(src, media_url(src, folder))

        return IMAGE_SRC_RE.sub(repl, html)


def sort_key(page: Page) -> tuple:
    """Chronological sort key: date, number prefix, then name."""
    stem = source_stem(page.path)
    number = extract_number_from_name(stem)
    return (page.date, number if number is not None else -1, strip_number_prefix(stem).lower())


def link_neighbours(pages: list[Page]) -> None:
    """Set ``previous``/``next`` on posts within each section.

    Section index pages take no part. Posts are ordered oldest first, so
    ``previous`` is the older post and ``next`` the newer one.
    """
    sections: dict[str, list[Page]] = {}
    for page in pages:
        page.previous = page.next = None
        if page.group and not page.is_index:
            sections.setdefault(page.group, []).append(page)
    for posts in sections.values():
        posts.sort(key=sort_key)
        for older, newer in zip(posts, posts[1:]):
            older.next = newer
            newer.previous = older


class ContentProcessor:
    """Loads all content into Page objects.

    Attributes:
        site_dir: Directory containing site content.
    """

    def __init__(
        self,
        site_dir: Path,
        content_loader: FileContentLoader | None = None,
        page_builder: DefaultPageBuilder | None = None,
    ):
        self.site_dir = site_dir
        self._content_loader = content_loader or FileContentLoader(site_dir)
        self._page_builder = page_builder or DefaultPageBuilder(site_dir)

    def load(self, include_drafts: bool = False) -> list[Page]:
        """Load all content files and create Page objects.

        Args:
            include_drafts: Whether to include draft pages.

        Returns:
            Pages in discovery order, with references resolved and
            neighbouring posts linked.

        Raises:
            BuildError: For malformed front-matter, invalid shortcodes,
                duplicate URLs or unresolvable cross-references.
        """
        pages: list[Page] = []
        for path in self._content_loader.iter_files():
            try:
                page = self._page_builder.build(path)
            except (FrontmatterError, ShortcodeError) as exc:
                raise BuildError(path, str(exc), exc) from exc
            if page.draft and not include_drafts:
                continue
            pages.append(page)
        self._check_unique_urls(pages)
        self._resolve_references(pages)
        link_neighbours(pages)
        return pages

    def _check_unique_urls(self, pages: list[Page]) -> None:
        seen: dict[str, Page] = {}
        for page in pages:
            other = seen.setdefault(page.url, page)
            if other is not page:
                rel = other.path.relative_to(self.site_dir).as_posix()
                raise BuildError(page.path, f"URL {page.url} is already used by {rel}")

    def _resolve_references(self, pages: list[Page]) -> None:
        """Replace ``folio-ref:`` URLs with the URL of the referenced page."""
        by_source = {p.path.relative_to(self.site_dir).as_posix(): p for p in pages}

        for page in pages:
            if REF_SCHEME not in page.content:
                continue

            def repl(match: re.Match, page: Page = page) -> str:
                target = match.group("target")
                resolved = by_source.get(target)
                if resolved is None and page.folder:
                    resolved = by_source.get(f"{page.folder}/{target}")
                if resolved is None:
                    raise BuildError(page.path, f"Reference to unknown page '{target}'")
                return resolved.url + (match.group("anchor") or "")

            page.content = REF_RE.sub(repl, page.content)
