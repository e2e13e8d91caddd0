"""Checks run over a freshly built site.

The validator inspects the output directory after every page, asset and
feed has been written, and collects each problem as a BuildError tied to
the file that caused it:

- ``/assets/...`` references in page content that have no source asset
  (this covers images and videos inserted through shortcodes);
- internal links and sources in rendered HTML that resolve to nothing in
  the output directory;
- ``previous``/``next`` post links that do not point at a built page;
- project entries whose image file is missing.
"""

from __future__ import annotations

import posixpath
from collections.abc import Iterable
from pathlib import Path
from urllib.parse import unquote, urlsplit

from .asset_resolver import DefaultAssetPathResolver
from .content import Page
from .errors import BuildError
from .html_utils import find_url_references, is_local_url
from .projects import Project, missing_project_images


class SiteValidator:
    """Collects problems in a built site.

    Attributes:
        project_root: Root directory of the project.
        output_dir: Directory holding the built site.
        root_url: Absolute site root; URLs starting with it count as internal.
        issues: Problems found so far.
    """

    def __init__(self, project_root: Path, output_dir: Path, root_url: str = ""):
        self.project_root = project_root
        self.output_dir = output_dir
        self.root_url = root_url.rstrip("/")
        self.assets = DefaultAssetPathResolver(project_root / "assets")
        self.issues: list[BuildError] = []
        self._seen: set[tuple[str, str]] = set()

    def report(self, source: Path, message: str) -> None:
        key = (str(source), message)
        if key not in self._seen:
            self._seen.add(key)
            self.issues.append(BuildError(source, message))

    def check_assets(self, page: Page) -> None:
        """Report ``/assets/`` references in page content with no source file."""
        for _, url in find_url_references(page.content):
            if url.startswith("/assets/") and not self.assets.url_exists(url):
                self.report(page.path, f"Missing asset {url}")

    def check_links(self, source: Path, page_url: str, html: str) -> None:
        """Report internal URLs in ``html`` that do not resolve to output files."""
        for attr, url in find_url_references(html):
            url = self.strip_root(url)
            if not is_local_url(url):
                continue
            if not self.resolves(page_url, url):
                noun = "link" if attr == "href" else "reference"
                self.report(source, f"Broken internal {noun} {url}")

    def strip_root(self, url: str) -> str:
        """Turn an absolute URL under the root URL into a root-relative one.

        ``https://example.com.evil.org/`` is not under ``https://example.com``.
        """
        if not self.root_url or not url.startswith(self.root_url):
            return url
        rest = url[len(self.root_url) :]
        if rest and rest[0] not in "/?#":
            return url
        return rest if rest.startswith("/") else "/" + rest

    def check_neighbours(self, pages: Iterable[Page], built_urls: set[str]) -> None:
        """Report previous/next links that point at pages not in the build."""
        for page in pages:
            for label, other in (("previous", page.previous), ("next", page.next)):
                if other is not None and other.url not in built_urls:
                    self.report(page.path, f"The {label} post {other.url} was not built")

    def check_projects(self, projects: list[Project]) -> None:
        data_file = self.project_root / "data" / "projects.yaml"
        for project in missing_project_images(projects, self.project_root / "assets"):
            self.report(data_file, f"Project '{project.title}': missing image {project.image}")
        for project in projects:
            if project.link.startswith("/") and not self.resolves("/", project.link):
                self.report(data_file, f"Project '{project.title}': broken link {project.link}")

    def resolves(self, page_url: str, url: str) -> bool:
        """Return True if ``url``, seen on ``page_url``, maps to an output file."""
        path = unquote(urlsplit(url).path)
        if not path:
            return True
        base = page_url if page_url.endswith("/") else posixpath.dirname(page_url) + "/"
        absolute = path if path.startswith("/") else posixpath.join(base, path)
        normalized = posixpath.normpath(absolute)
        target = self.output_dir / normalized.lstrip("/")
        if absolute.endswith("/") or target.is_dir():
            return (target / "index.html").is_file()
        return target.is_file()
