from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from urllib.parse import quote

from .content import Page, sort_key
from .utils import slugify


class PageCollection(Sequence[Page]):
    """Lightweight helper for working with lists of Pages in templates and code."""

    def __init__(self, pages: Iterable[Page]):
        self._pages = list(pages)
        self._sorted_cache: PageCollection | None = None

    def __iter__(self) -> Iterator[Page]:
        return iter(self._pages)

    def __len__(self) -> int:
        return len(self._pages)

    def __getitem__(self, item):
        return self._pages[item]

    def group(self, name: str) -> PageCollection:
        return PageCollection(p for p in self._pages if p.group == name)

    def posts(self, section: str = "posts") -> PageCollection:
        """Published, non-index pages of ``section``, newest first."""
        return PageCollection(
            p for p in self._pages if p.group == section and not p.is_index
        ).published().sorted()

    def with_tag(self, tag: str) -> PageCollection:
        return PageCollection(p for p in self._pages if tag in p.tags)

    def by_author(self, author: str) -> PageCollection:
        return PageCollection(p for p in self._pages if author in p.authors)

    def drafts(self) -> PageCollection:
        return PageCollection(p for p in self._pages if p.draft)

    def published(self) -> PageCollection:
        return PageCollection(p for p in self._pages if not p.draft)

    def sorted(self, reverse: bool = True) -> PageCollection:
        """Sort pages by date, then by number prefix, then by filename.

        Args:
            reverse: If True (default), newest first. If False, oldest first.
        """
        if not reverse:
            return PageCollection(sorted(self._pages, key=sort_key))
        if self._sorted_cache is None:
            self._sorted_cache = PageCollection(
                sorted(self._pages, key=sort_key, reverse=True)
            )
        return self._sorted_cache

    def latest(self, count: int = 5) -> PageCollection:
        return PageCollection(self.sorted()[:count])

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"PageCollection({len(self._pages)} pages)"


class TaxonomyCollection(Mapping[str, PageCollection]):
    """Mapping of term to PageCollection for one taxonomy (tags, authors).

    Terms iterate in case-insensitive alphabetical order; each term's pages
    are sorted newest first.

    Attributes:
        name: Taxonomy name, also the URL prefix (``/tags/``).
    """

    def __init__(self, name: str, mapping: Mapping[str, Iterable[Page]]):
        self.name = name
        self._mapping = {
            term: PageCollection(mapping[term]).sorted()
            for term in sorted(mapping, key=lambda t: (t.lower(), t))
        }

    def __getitem__(self, key: str) -> PageCollection:
        return self._mapping[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)

    def url_for(self, term: str) -> str:
        """Return the listing URL for ``term``, e.g. ``/tags/swiftui/``.

        Non-ASCII slugs are percent-encoded: ``/tags/%E6%95%B0%E5%AD%A6/``.
        """
        return f"/{self.name}/{quote(slugify(term))}/"

    def by_count(self) -> list[tuple[str, PageCollection]]:
        """Terms with their pages, most used first."""
        return sorted(self._mapping.items(), key=lambda item: (-len(item[1]), item[0].lower()))

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"TaxonomyCollection({self.name!r}, {len(self._mapping)} terms)"


def build_taxonomy(name: str, pages: Iterable[Page]) -> TaxonomyCollection:
    """Index pages by their terms in taxonomy ``name``.

    Terms that share a slug ("SwiftUI", "swiftui") are merged under the
    first spelling seen.
    """
    spelling: dict[str, str] = {}
    index: dict[str, list[Page]] = {}
    for page in pages:
        for term in page.terms(name):
            canonical = spelling.setdefault(slugify(term), term)
            bucket = index.setdefault(canonical, [])
            if page not in bucket:
                bucket.append(page)
    return TaxonomyCollection(name, index)
