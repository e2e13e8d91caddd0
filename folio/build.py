"""Site building functionality for Folio.

This module contains the core logic for building a static site from source files.
It loads configuration and data, processes content, renders templates, and generates output files.

Key functions:
- build_site: Main function to build the entire site.
- load_config: Loads site configuration from folio.yaml.
- load_data: Loads site data from YAML files in the data directory.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import unquote

import yaml
from jinja2 import TemplateSyntaxError

from .assets import AssetPipeline
from .collections import build_taxonomy
from .content import ContentProcessor, LayoutResolver, Page
from .errors import BuildError, ValidationError
from .feeds import create_default_feed_registry
from .html_utils import absolutize_html_urls
from .listings import Listing, build_listings
from .projects import Project, load_projects
from .templates import TemplateEngine
from .utils import ensure_clean_dir
from .validation import SiteValidator

__all__ = [
    "BuildError",
    "BuildResult",
    "DEFAULT_CONFIG",
    "ValidationError",
    "build_site",
    "load_config",
    "load_data",
]

DEFAULT_CONFIG = {
    "output_dir": "output",
    "port": 4000,
    "root_url": "",
    "paginate": 10,
    "feed_limit": 20,
    "feed_sections": ["posts"],
    "taxonomies": ["tags", "authors"],
    "image_max_width": None,
    "validate": True,
}


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        pages: List of all pages in the site.
        listings: Generated section, term and taxonomy index pages.
        output_dir: Directory where the site was built.
        data: Global site data dictionary.
    """

    pages: list[Page]
    listings: list[Listing]
    output_dir: Path
    data: dict[str, Any]


def load_config(project_root: Path) -> dict[str, Any]:
    """Load site configuration from folio.yaml.

    ``ws_port`` defaults to the port after ``port``.

    Args:
        project_root: Root directory of the project.

    Returns:
        Dictionary containing configuration values, with defaults applied.

    Raises:
        BuildError: If folio.yaml is not valid YAML.
    """
    config_path = project_root / "folio.yaml"
    config = DEFAULT_CONFIG.copy()
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            try:
                loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise BuildError(config_path, "Invalid YAML", exc) from exc
            if isinstance(loaded, dict):
                config.update(loaded)
    config.setdefault("ws_port", int(config["port"]) + 1)
    return config


def load_data(project_root: Path) -> dict[str, Any]:
    """Load site data from YAML files in the data directory.

    ``site.yaml`` is merged at the top level; every other file is stored
    under its stem (``authors.yaml`` becomes ``data.authors``).

    Args:
        project_root: Root directory of the project.

    Returns:
        Dictionary containing merged data from all YAML files.
    """
    data_dir = project_root / "data"
    data: dict[str, Any] = {}
    if not data_dir.exists():
        return data
    for path in sorted(data_dir.glob("*.yaml")):
        with open(path, encoding="utf-8") as f:
            try:
                payload = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise BuildError(path, "Invalid YAML", exc) from exc
        if path.name == "site.yaml":
            if isinstance(payload, dict):
                data.update(payload)
        elif payload is not None:
            data[path.stem] = payload
    return data


def build_site(
    project_root: Path,
    include_drafts: bool = False,
    root_url: str | None = None,
    clean_output: bool = True,
    output_dir_override: Path | None = None,
) -> BuildResult:
    """Build the entire static site.

    Args:
        project_root: Root directory of the project.
        include_drafts: Whether to include draft pages.
        root_url: Optional base URL to absolutize links with.
        clean_output: Whether to wipe the output directory before building.
        output_dir_override: Optional path to write the build output instead of config output_dir.

    Returns:
        BuildResult containing all pages, listings, output directory, and site data.

    Raises:
        FileNotFoundError: If the project has no content directory.
        BuildError: For the first content, data or template error.
        ValidationError: For every broken link or missing asset found in the output.
    """
    config = load_config(project_root)
    if root_url is not None:
        config["root_url"] = root_url
    output_dir = output_dir_override or (
        project_root / config.get("output_dir", "output")
    )

    data = load_data(project_root)
    resolved_root = str(config.get("root_url") or "")
    if resolved_root:
        data.setdefault("root_url", resolved_root)
    site_dir = project_root / "content"
    if not site_dir.exists():
        raise FileNotFoundError(f"Expected content directory at {site_dir}")

    pages = ContentProcessor(site_dir).load(include_drafts=include_drafts)
    projects = load_projects(project_root)
    taxonomies = {
        name: build_taxonomy(name, pages) for name in config.get("taxonomies") or []
    }
    resolver = LayoutResolver(site_dir)
    listings = build_listings(
        pages,
        taxonomies,
        resolver,
        per_page=int(config.get("paginate") or 10),
        section_titles=data.get("sections") if isinstance(data.get("sections"), dict) else None,
    )
    _check_listing_urls(site_dir, pages, listings)

    if clean_output:
        ensure_clean_dir(output_dir)
    else:
        output_dir.mkdir(parents=True, exist_ok=True)

    engine = TemplateEngine(site_dir, data, root_url=resolved_root, projects=projects)
    engine.update_collections(pages, taxonomies)

    rendered_items: list[tuple[Path, str, str]] = []
    for page in pages:
        rendered = _render(page.path, lambda: engine.render_page(page))
        rendered_items.append((page.path, page.url, rendered))
        _write_page(output_dir, page.url, rendered, resolved_root)
    for listing in listings:
        source = _listing_source(resolver, listing)
        rendered = _render(source, lambda: engine.render_listing(listing))
        rendered_items.append((source, listing.url, rendered))
        _write_page(output_dir, listing.url, rendered, resolved_root)

    AssetPipeline(
        project_root, output_dir, image_max_width=config.get("image_max_width")
    ).run()
    feeds = create_default_feed_registry(
        config.get("feed_sections") or ["posts"], int(config.get("feed_limit") or 0)
    )
    feeds.generate_all(output_dir, [*pages, *listings], data)

    if config.get("validate", True):
        _validate(project_root, output_dir, resolved_root, pages, projects, rendered_items)
    return BuildResult(pages=pages, listings=listings, output_dir=output_dir, data=data)


def _render(source: Path, render) -> str:
    """Run ``render``, turning template failures into BuildErrors for ``source``."""
    try:
        return render()
    except BuildError:
        raise
    except TemplateSyntaxError as exc:
        raise BuildError(
            source,
            f"Template syntax error on line {exc.lineno}: {exc.message}",
            exc,
        ) from exc
    except Exception as exc:
        raise BuildError(source, _format_error_message(exc), exc) from exc


def _format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message.

    Args:
        exc: The exception to format.

    Returns:
        A human-readable error message.
    """
    error_type = type(exc).__name__
    error_msg = str(exc)

    if error_type == "UndefinedError":
        return f"Undefined variable: {error_msg}"
    if error_type == "TemplateNotFound":
        return f"Template not found: {error_msg}"
    if error_type == "AssetNotFoundError":
        return error_msg
    if error_type == "TypeError":
        return f"Type error: {error_msg}"
    if error_type == "AttributeError":
        return f"Attribute error: {error_msg}"

    return f"{error_type}: {error_msg}"


def _listing_source(resolver: LayoutResolver, listing: Listing) -> Path:
    """The file to blame for problems in a listing.

    This is the layout that renders it, whether the site's own or a built-in
    one. Without a layout file a section listing blames its folder.
    """
    layout = resolver.find(listing.layout)
    if layout is not None:
        return layout
    if listing.section:
        return resolver.site_dir / listing.section
    return resolver.site_dir


def _check_listing_urls(site_dir: Path, pages: list[Page], listings: list[Listing]) -> None:
    by_url = {page.url: page for page in pages}
    claimed: dict[str, Listing] = {}
    for listing in listings:
        page = by_url.get(listing.url)
        if page is not None:
            raise BuildError(
                page.path,
                f"URL {page.url} clashes with the generated {listing.kind} listing '{listing.title}'",
            )
        other = claimed.setdefault(listing.url, listing)
        if other is listing:
            continue
        # Sections come first, so a section is always the earlier claim.
        folder = other.section or listing.section
        raise BuildError(
            site_dir / folder if folder else site_dir,
            f"URL {listing.url} of the generated {listing.kind} listing '{listing.title}' "
            f"clashes with the {other.kind} listing '{other.title}'",
        )


def _write_page(output_dir: Path, url: str, rendered: str, root_url: str) -> None:
    """Write a rendered page to ``<url>/index.html`` in the output directory."""
    if root_url:
        rendered = absolutize_html_urls(rendered, root_url)
    target_dir = output_dir / unquote(url).strip("/")
    target_dir.mkdir(parents=True, exist_ok=True)
    with open(target_dir / "index.html", "w", encoding="utf-8") as f:
        f.write(rendered)


def _validate(
    project_root: Path,
    output_dir: Path,
    root_url: str,
    pages: list[Page],
    projects: list[Project],
    rendered_items: list[tuple[Path, str, str]],
) -> None:
    validator = SiteValidator(project_root, output_dir, root_url)
    for page in pages:
        validator.check_assets(page)
    for source, url, html in rendered_items:
        validator.check_links(source, url, html)
    validator.check_neighbours(pages, {url for _, url, _ in rendered_items})
    validator.check_projects(projects)
    if validator.issues:
        raise ValidationError(validator.issues)
