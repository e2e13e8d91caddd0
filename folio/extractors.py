"""Metadata extractors for Folio.

Front-matter is parsed first and handed to every other extractor, so each
field follows the same rule: an explicit front-matter value wins, and
otherwise the extractor falls back to what the file itself implies (first
heading, filename date prefix, first paragraph).

Key classes:
- FrontmatterExtractor: Splits and validates the YAML front-matter block.
- TitleExtractor: Title from front-matter, heading or filename.
- DateExtractor: Date from front-matter, filename prefix or mtime.
- TaxonomyExtractor: Tags and authors lists.
- SummaryExtractor: Summary, description and excerpt.
- DraftExtractor: Draft flag from front-matter or ``_`` filename prefix.
- CompositeMetadataExtractor: Runs all of the above.
"""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from .utils import (
    coerce_datetime,
    extract_date_from_name,
    first_paragraph,
    is_markdown,
    titleize,
)

FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
MORE_MARKER = "<!--more-->"


class FrontmatterError(ValueError):
    """Raised when a front-matter block is present but malformed."""


def extract_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Extract YAML front-matter from content.

    Args:
        text: Raw file content.

    Returns:
        Tuple of (front-matter dict, remaining content). Files without a
        leading ``---`` block yield an empty dict and the text unchanged.

    Raises:
        FrontmatterError: If the block is not valid YAML or not a mapping.
    """
    text = text.lstrip("\ufeff")
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" (line {mark.line + 2})" if mark is not None else ""
        raise FrontmatterError(f"Invalid YAML in front-matter{where}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FrontmatterError(
            f"Front-matter must be a mapping, got {type(data).__name__}"
        )
    return data, text[match.end() :]


def _string_list(frontmatter: dict[str, Any], key: str) -> list[str]:
    value = frontmatter.get(key)
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        raise FrontmatterError(f"'{key}' must be a list of strings")
    result: list[str] = []
    for item in items:
        if not isinstance(item, (str, int, float)) or isinstance(item, bool):
            raise FrontmatterError(f"'{key}' must be a list of strings")
        text = str(item).strip()
        if text and text not in result:
            result.append(text)
    return result


class FrontmatterExtractor:
    """Validates the types of the known front-matter fields."""

    STRING_FIELDS = ("title", "summary", "slug", "layout", "author")

    def extract(self, body: str, path: Path, frontmatter: dict[str, Any]) -> dict[str, Any]:
        for key in self.STRING_FIELDS:
            value = frontmatter.get(key)
            if value is not None and not isinstance(value, str):
                raise FrontmatterError(f"'{key}' must be a string")
        draft = frontmatter.get("draft")
        if draft is not None and not isinstance(draft, bool):
            raise FrontmatterError("'draft' must be true or false")
        return {}


class TitleExtractor:
    """Extracts title from front-matter, first level-1 heading or filename."""

    def extract(self, body: str, path: Path, frontmatter: dict[str, Any]) -> dict[str, Any]:
        title = frontmatter.get("title")
        if title:
            return {"title": title.strip()}
        if is_markdown(path):
            for line in body.splitlines():
                stripped = line.strip()
                if stripped.startswith("# "):
                    return {"title": stripped[2:].strip()}
        return {"title": titleize(path.name)}


class DateExtractor:
    """Extracts date from front-matter, filename prefix or file mtime."""

    def extract(self, body: str, path: Path, frontmatter: dict[str, Any]) -> dict[str, Any]:
        if frontmatter.get("date") is not None:
            try:
                return {"date": coerce_datetime(frontmatter["date"])}
            except ValueError as exc:
                raise FrontmatterError(str(exc)) from exc
        date = extract_date_from_name(path.name)
        if date is None:
            date = datetime.fromtimestamp(path.stat().st_mtime).replace(microsecond=0)
        return {"date": date}


class TaxonomyExtractor:
    """Extracts the ``tags`` and ``authors`` lists.

    A single ``author`` string is accepted as a one-element ``authors`` list.
    """

    def extract(self, body: str, path: Path, frontmatter: dict[str, Any]) -> dict[str, Any]:
        authors = _string_list(frontmatter, "authors")
        single = frontmatter.get("author")
        if single and single.strip() not in authors:
            authors.insert(0, single.strip())
        return {"tags": _string_list(frontmatter, "tags"), "authors": authors}


class SummaryExtractor:
    """Extracts summary, description and excerpt.

    The summary comes from front-matter, then the text before a
    ``<!--more-->`` marker, then the first prose paragraph. The description
    is the summary cut to 160 characters for meta tags.
    """

    def extract(self, body: str, path: Path, frontmatter: dict[str, Any]) -> dict[str, Any]:
        excerpt = self._extract_excerpt(body) if is_markdown(path) else ""
        summary = frontmatter.get("summary")
        if not summary and MORE_MARKER in body:
            lead = body.split(MORE_MARKER, 1)[0]
            paragraphs = (first_paragraph(p, limit=10_000) for p in lead.split("\n\n"))
            summary = " ".join(p for p in paragraphs if p)
        if not summary:
            summary = excerpt or first_paragraph(body)
        summary = " ".join(summary.split())
        return {"summary": summary, "description": summary[:160], "excerpt": excerpt}

    def _extract_excerpt(self, text: str) -> str:
        """Return the first prose paragraph of Markdown text, uncut."""
        return first_paragraph(text, limit=10_000)


class DraftExtractor:
    """Marks a page as draft via front-matter or a leading underscore."""

    def extract(self, body: str, path: Path, frontmatter: dict[str, Any]) -> dict[str, Any]:
        return {"draft": bool(frontmatter.get("draft", False)) or path.name.startswith("_")}


class CompositeMetadataExtractor:
    """Combines multiple metadata extractors.

    The front-matter block is split off once; every extractor receives the
    remaining body together with the parsed front-matter mapping. Later
    extractors override keys set by earlier ones.
    """

    def __init__(self, extractors: list | None = None):
        if extractors is None:
            self._extractors = [
                FrontmatterExtractor(),
                TitleExtractor(),
                DateExtractor(),
                TaxonomyExtractor(),
                SummaryExtractor(),
                DraftExtractor(),
            ]
        else:
            self._extractors = list(extractors)

    def add_extractor(self, extractor) -> None:
        self._extractors.append(extractor)

    def extract(self, content: str, path: Path) -> dict[str, Any]:
        """Extract all metadata from raw file content.

        Returns:
            Dictionary with ``frontmatter``, ``body`` and every extracted field.

        Raises:
            FrontmatterError: If the front-matter is malformed.
        """
        frontmatter, body = extract_frontmatter(content)
        result: dict[str, Any] = {"frontmatter": frontmatter, "body": body}
        for extractor in self._extractors:
            result.update(extractor.extract(body, path, frontmatter))
        return result


default_metadata_extractor = CompositeMetadataExtractor()
