"""Utility functions for Folio.

String, path and date helpers shared by the content, listing and CLI modules.

Key functions:
    slugify: Convert filenames and terms to URL slugs.
    titleize: Convert filenames to human-readable titles.
    extract_date_from_name: Extract date from filename prefix.
    coerce_datetime: Normalize front-matter dates.
    first_paragraph: Plain-text first paragraph for descriptions.
    ensure_clean_dir: Ensure a directory exists and is empty.
"""

from __future__ import annotations

import posixpath
import re
import shutil
import unicodedata
from datetime import date, datetime, timezone
from pathlib import Path

DATE_PREFIX_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:-|$)")


def _split_date_prefix(name: str) -> tuple[list[str], list[str]]:
    parts = name.split("-")
    if len(parts) >= 3 and all(p.isdigit() for p in parts[:3]):
        return parts[:3], parts[3:]
    return [], parts


def slugify(name: str) -> str:
    """Convert a filename stem or taxonomy term to a slug, dropping date prefix.

    Letters and digits of any script are kept, so "数学" stays "数学".
    URLs built from slugs percent-encode them.

    Args:
        name: Filename stem or free text.

    Returns:
        URL-friendly slug.

    Examples:
        >>> slugify("2024-01-15-Hello World")
        'hello-world'

        >>> slugify("SwiftUI")
        'swiftui'
    """
    date_parts, rest = _split_date_prefix(name)
    cleaned = "-".join(rest) if date_parts and rest else name
    cleaned = unicodedata.normalize("NFKC", cleaned)
    cleaned = re.sub(r"[\W_]+", "-", cleaned)
    cleaned = cleaned.strip("-").lower()
    return cleaned or "index"


def titleize(filename: str) -> str:
    """Convert a filename to a human-readable title.

    Examples:
        >>> titleize("2024-01-15-hello-world.md")
        'Hello World'
    """
    base = Path(filename).name.split(".")[0]
    date_parts, rest = _split_date_prefix(base)
    if date_parts and rest:
        base = "-".join(rest)
    words = re.split(r"[\s\-_]+", base)
    return " ".join(word.capitalize() for word in words if word) or "Untitled"


def extract_date_from_name(name: str) -> datetime | None:
    """Extract a date from a filename with YYYY-MM-DD prefix.

    Examples:
        >>> extract_date_from_name("2024-01-15-hello-world")
        datetime.datetime(2024, 1, 15, 0, 0)
    """
    match = DATE_PREFIX_RE.match(name)
    if not match:
        return None
    try:
        return datetime(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def coerce_datetime(value: object) -> datetime:
    """Normalize a front-matter date value to a naive datetime.

    YAML yields ``date`` or ``datetime`` objects for unquoted values and
    strings for quoted ones. Aware datetimes are converted to naive UTC so
    every page date compares with every other.

    Raises:
        ValueError: If the value cannot be interpreted as a date.
    """
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = f"{text[:-1]}+00:00"
        try:
            result = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Invalid date: {value!r}") from None
    else:
        raise ValueError(f"Invalid date: {value!r}")
    if result.tzinfo is not None:
        result = result.astimezone(timezone.utc).replace(tzinfo=None)
    return result


def first_paragraph(text: str, limit: int = 160) -> str:
    """Extract and clean the first prose paragraph from Markdown text.

    Headings, images, fenced code, HTML tags, shortcodes and Jinja syntax
    are skipped or stripped. Whitespace is collapsed and the result is
    truncated to ``limit`` characters.
    """
    for para in (p.strip() for p in text.split("\n\n")):
        if not para or para.startswith(("#", "![", "```", "~~~", "{{<")):
            continue
        para = re.sub(r"<[^>]+>", "", para)
        para = re.sub(r"\{\{<.*?>\}\}", "", para, flags=re.DOTALL)
        para = re.sub(r"\{[%#{].*?[%#}]\}", "", para, flags=re.DOTALL)
        para = re.sub(r"!?\[([^\]]*)\]\([^)]*\)", r"\1", para)
        collapsed = " ".join(para.split())
        if collapsed:
            return collapsed[:limit]
    return ""


def count_words(text: str) -> int:
    """Count words in Markdown text, ignoring fenced code blocks."""
    prose = re.sub(r"^(```|~~~).*?^\1", "", text, flags=re.DOTALL | re.MULTILINE)
    return len(re.findall(r"\w+", prose))


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty."""
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)


def is_markdown(path: Path) -> bool:
    """Check if a path is a Markdown file."""
    return path.suffix.lower() == ".md"


def is_template(path: Path) -> bool:
    """Check if a path is a Jinja template file (.jinja or .html.jinja)."""
    return path.suffix == ".jinja"


def is_html(path: Path) -> bool:
    """Check if a path is a plain HTML file (not a Jinja template)."""
    return path.suffix.lower() == ".html"


def source_stem(path: Path) -> str:
    """Return the filename without any of its content suffixes.

    ``index.html.jinja`` and ``index.md`` both yield ``index``.
    """
    name = path.name
    for suffix in (".html.jinja", ".jinja", ".html", ".md"):
        if name.lower().endswith(suffix):
            return name[: -len(suffix)]
    return path.stem


def extract_number_from_name(name: str) -> int | None:
    """Extract a leading number from a filename for sorting.

    Handles filenames like "01-intro" or "2024-01-15-02-part-two".
    """
    _, rest = _split_date_prefix(name)
    if rest and rest[0].isdigit():
        return int(rest[0])
    return None


def strip_number_prefix(name: str) -> str:
    """Strip date and number prefixes from filename for sorting comparison."""
    date_parts, parts = _split_date_prefix(name)
    if parts and parts[0].isdigit():
        parts = parts[1:]
    return "-".join(parts) if parts else name


def media_url(src: str, folder: str) -> str:
    """Map a media path written in content to its URL under ``/assets/images``.

    Absolute URLs, root-relative paths and template expressions pass through.
    Relative paths are taken relative to the page's folder.

    Examples:
        >>> media_url("widgets/timeline.png", "posts")
        '/assets/images/posts/widgets/timeline.png'

        >>> media_url("/assets/images/logo.png", "posts")
        '/assets/images/logo.png'
    """
    if not src or src.startswith(("http://", "https://", "//", "/", "data:")) or "{{" in src:
        return src
    normalized = posixpath.normpath(f"{folder}/{src}" if folder else src)
    return f"/assets/images/{normalized}"
