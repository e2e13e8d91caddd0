"""Generated listing pages for Folio.

Listings are pages with no source file: the paginated index of a section
(``/posts/``, ``/posts/page/2/``), one page per taxonomy term
(``/tags/swiftui/``) and one index per taxonomy (``/tags/``).

Key classes:
- Paginator: One page of a paginated list with navigation URLs.
- Listing: A generated page rendered by the TemplateEngine.

Functions:
    paginate: Split pages into Paginators.
    build_listings: Create every listing for the site.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from urllib.parse import quote

from .collections import PageCollection, TaxonomyCollection
from .content import LayoutResolver, Page
from .utils import titleize

EPOCH = datetime(1970, 1, 1)


@dataclass
class Paginator:
    """One page of a paginated list.

    Attributes:
        number: 1-based page number.
        total_pages: Number of pages in the list.
        items: Pages shown on this page.
        base_url: URL of the first page; later pages live under ``page/N/``.
        total_items: Number of pages across the whole list.
    """

    number: int
    total_pages: int
    items: PageCollection
    base_url: str
    total_items: int = 0

    def page_url(self, number: int) -> str:
        if number <= 1:
            return self.base_url
        return f"{self.base_url}page/{number}/"

    @property
    def url(self) -> str:
        return self.page_url(self.number)

    @property
    def has_previous(self) -> bool:
        return self.number > 1

    @property
    def has_next(self) -> bool:
        return self.number < self.total_pages

    @property
    def previous_url(self) -> str | None:
        return self.page_url(self.number - 1) if self.has_previous else None

    @property
    def next_url(self) -> str | None:
        return self.page_url(self.number + 1) if self.has_next else None


def paginate(pages: Iterable[Page], per_page: int, base_url: str) -> list[Paginator]:
    """Split ``pages`` into pages of ``per_page`` items.

    A non-positive ``per_page`` puts everything on one page. An empty list
    still yields one (empty) page so the list URL always exists.
    """
    items = list(pages)
    size = per_page if per_page > 0 else max(len(items), 1)
    total = max(1, math.ceil(len(items) / size))
    return [
        Paginator(
            number=n + 1,
            total_pages=total,
            items=PageCollection(items[n * size : (n + 1) * size]),
            base_url=base_url,
            total_items=len(items),
        )
        for n in range(total)
    ]


@dataclass
class Listing:
    """A generated page with no source file.

    Attributes:
        title: Page title.
        url: URL of this listing page.
        kind: "section", "term" or "terms".
        layout: Layout template to use.
        pages: Every page of the list, newest first (not just this page's).
        paginator: This page's slice of ``pages``; None for taxonomy indexes.
        taxonomy: The taxonomy for "term" and "terms" listings.
        term: The term for "term" listings.
        section: The content folder of "section" listings.
    """

    title: str
    url: str
    kind: str
    layout: str
    pages: PageCollection
    paginator: Paginator | None = None
    taxonomy: TaxonomyCollection | None = None
    term: str = ""
    section: str = ""
    frontmatter: dict[str, Any] = field(default_factory=dict)

    draft = False
    source_type = "listing"
    toc = ()

    @property
    def date(self) -> datetime:
        return max((p.date for p in self.pages), default=EPOCH)

    @property
    def description(self) -> str:
        if self.kind == "term":
            return f"Posts filed under {self.term}"
        return self.title

    summary = description


def _layout(resolver: LayoutResolver, candidates: list[str]) -> str:
    for candidate in candidates:
        if resolver.exists(candidate):
            return candidate
    return "default"


def build_listings(
    pages: list[Page],
    taxonomies: Mapping[str, TaxonomyCollection],
    resolver: LayoutResolver,
    per_page: int = 10,
    section_titles: Mapping[str, str] | None = None,
) -> list[Listing]:
    """Create section lists, taxonomy term pages and taxonomy indexes.

    Sections that have their own ``index`` source file get no generated
    list. Output order is deterministic: sections alphabetically, then
    each taxonomy with its terms alphabetically.
    """
    section_titles = section_titles or {}
    listings: list[Listing] = []

    indexed = {p.group for p in pages if p.group and p.is_index and p.folder == p.group}
    for section in sorted({p.group for p in pages if p.group} - indexed):
        members = PageCollection(p for p in pages if p.group == section and not p.is_index)
        layout = _layout(resolver, [f"{section}/list", "list"])
        title = section_titles.get(section) or titleize(section)
        for paginator in paginate(members.sorted(), per_page, f"/{quote(section)}/"):
            listings.append(
                Listing(
                    title=title,
                    url=paginator.url,
                    kind="section",
                    layout=layout,
                    pages=members.sorted(),
                    paginator=paginator,
                    section=section,
                )
            )

    for name, taxonomy in sorted(taxonomies.items()):
        term_layout = _layout(resolver, [f"{name}/taxonomy", "taxonomy", "list"])
        for term, members in taxonomy.items():
            for paginator in paginate(members, per_page, taxonomy.url_for(term)):
                listings.append(
                    Listing(
                        title=term,
                        url=paginator.url,
                        kind="term",
                        layout=term_layout,
                        pages=members,
                        paginator=paginator,
                        taxonomy=taxonomy,
                        term=term,
                    )
                )
        listings.append(
            Listing(
                title=titleize(name),
                url=f"/{name}/",
                kind="terms",
                layout=_layout(resolver, [f"{name}/terms", "terms"]),
                pages=PageCollection(
                    {id(p): p for term in taxonomy for p in taxonomy[term]}.values()
                ).sorted(),
                taxonomy=taxonomy,
            )
        )
    return listings
