"""Project gallery entries for Folio.

Projects are a hand-maintained list in ``data/projects.yaml``::

    - title: Habit Grid
      link: https://apps.apple.com/app/id000000
      description: A SwiftUI habit tracker with widgets.
      image: projects/habit-grid.png

The list is validated when loaded and exposed to templates as ``projects``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .errors import BuildError
from .utils import media_url


class ProjectError(ValueError):
    """Raised when a project entry is malformed."""


@dataclass(frozen=True)
class Project:
    """A project shown in the gallery.

    Attributes:
        title: Project name.
        link: External URL or root-relative path.
        description: Optional one-paragraph description.
        image: Optional image path relative to ``assets/images``.
    """

    title: str
    link: str
    description: str = ""
    image: str | None = None

    @property
    def image_url(self) -> str | None:
        return media_url(self.image, "") if self.image else None

    @property
    def is_external(self) -> bool:
        return self.link.startswith(("http://", "https://"))


def parse_project(entry: Any, position: int) -> Project:
    """Validate one YAML entry and build a Project.

    Raises:
        ProjectError: If a field is missing or has the wrong type.
    """
    where = f"entry {position}"
    if not isinstance(entry, dict):
        raise ProjectError(f"{where}: expected a mapping")
    title = entry.get("title")
    if not isinstance(title, str) or not title.strip():
        raise ProjectError(f"{where}: 'title' is required")
    where = f"{where} ({title.strip()})"
    link = entry.get("link")
    if not isinstance(link, str) or not link.startswith(("http://", "https://", "/")):
        raise ProjectError(f"{where}: 'link' must be an http(s) URL or a /path")
    description = entry.get("description") or ""
    if not isinstance(description, str):
        raise ProjectError(f"{where}: 'description' must be a string")
    image = entry.get("image")
    if image is not None and (not isinstance(image, str) or not image.strip()):
        raise ProjectError(f"{where}: 'image' must be a path")
    return Project(
        title=title.strip(),
        link=link.strip(),
        description=" ".join(description.split()),
        image=image.strip().lstrip("/") if image else None,
    )


def load_projects(project_root: Path) -> list[Project]:
    """Load and validate ``data/projects.yaml``.

    Returns:
        Projects in file order; an empty list when the file is absent.

    Raises:
        BuildError: If the file is not a list of valid entries.
    """
    path = project_root / "data" / "projects.yaml"
    if not path.exists():
        return []
    try:
        with open(path, encoding="utf-8") as f:
            payload = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise BuildError(path, "Invalid YAML", exc) from exc
    if payload is None:
        return []
    if isinstance(payload, dict) and "projects" in payload:
        payload = payload["projects"]
    if not isinstance(payload, list):
        raise BuildError(path, "Expected a list of projects")
    try:
        return [parse_project(entry, n) for n, entry in enumerate(payload, start=1)]
    except ProjectError as exc:
        raise BuildError(path, str(exc), exc) from exc


def missing_project_images(projects: list[Project], assets_dir: Path) -> list[Project]:
    """Return the projects whose image file does not exist."""
    images_dir = assets_dir / "images"
    return [p for p in projects if p.image and not (images_dir / p.image).is_file()]
