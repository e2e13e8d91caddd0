"""Command-line interface for Folio.

This module defines the CLI commands using Click framework.
It provides commands for creating new projects, building sites, and running the development server.

Commands:
- new: Scaffold a new Folio blog.
- build: Build the site into the output directory.
- serve: Run development server with live reload.
- post: Create a new post interactively.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from datetime import datetime
from pathlib import Path

import click
import questionary
import yaml

from . import __version__
from .errors import BuildError, ValidationError
from .utils import is_markdown, slugify, source_stem

# Path to the default template directory
_TEMPLATES_DIR = Path(__file__).parent / "templates" / "default"


@click.group()
@click.version_option(version=__version__, prog_name="folio")
def cli():
    """Folio static site generator for technical blogs."""


@cli.command()
@click.argument("name")
def new(name: str):
    """Scaffold a new Folio blog."""
    target = Path(name).resolve()
    if target.exists() and any(target.iterdir()):
        raise click.ClickException(
            f"Refusing to initialize into non-empty directory: {target}"
        )
    _scaffold(target)
    click.echo(f"New Folio blog created at {target}")


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft posts")
def build(drafts: bool):
    """Build the site into the output directory."""
    project_root = Path.cwd()
    from .build import build_site

    try:
        result = build_site(project_root, include_drafts=drafts)
    except ValidationError as exc:
        click.echo(click.style(f"Build failed: {exc}", fg="red", bold=True), err=True)
        for issue in exc.issues:
            _echo_issue(project_root, issue)
        raise SystemExit(1) from None
    except BuildError as exc:
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        _echo_issue(project_root, exc)
        raise SystemExit(1) from None
    except FileNotFoundError as exc:
        raise click.ClickException(str(exc)) from None
    click.echo(
        f"Built {len(result.pages)} pages and {len(result.listings)} listings "
        f"into {result.output_dir}"
    )


def _echo_issue(project_root: Path, error: BuildError) -> None:
    click.echo(
        click.style(f"  File: {_display_path(project_root, error.source_path)}", fg="yellow"),
        err=True,
    )
    click.echo(click.style(f"  Error: {error.message}", fg="white"), err=True)


def _display_path(project_root: Path, path: Path) -> str:
    try:
        return path.relative_to(project_root).as_posix()
    except ValueError:
        return str(path)


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft posts")
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port to run the dev server (overrides folio.yaml)",
)
@click.option(
    "--ws-port",
    type=int,
    required=False,
    help="Port for the live reload websocket server (overrides folio.yaml ws_port)",
)
def serve(drafts: bool, port: int | None, ws_port: int | None):
    """Run dev server with live reload."""
    project_root = Path.cwd()
    from .server import DevServer

    server = DevServer(project_root, http_port=port, ws_port=ws_port)
    server.start(include_drafts=drafts)


@cli.command()
def post():
    """Create a new post interactively."""
    project_root = Path.cwd()
    content_dir = project_root / "content"

    if not content_dir.exists():
        raise click.ClickException(
            "No content/ directory found. Run this command from a Folio project root."
        )

    sections = _get_sections(content_dir)
    if not sections:
        raise click.ClickException(
            "No sections found in content/. Create a folder like content/posts/ first."
        )

    section = questionary.select(
        "Section:",
        choices=sections,
        default="posts" if "posts" in sections else None,
        style=_questionary_style(),
    ).ask()
    if section is None:
        raise click.Abort()

    title = questionary.text(
        "Title:",
        validate=lambda x: len(x.strip()) > 0 or "Title cannot be empty",
        style=_questionary_style(),
    ).ask()
    if title is None:
        raise click.Abort()
    title = title.strip()

    tags = questionary.text("Tags (comma separated):", style=_questionary_style()).ask()
    if tags is None:
        raise click.Abort()

    draft = questionary.confirm(
        "Mark as draft?", default=True, style=_questionary_style()
    ).ask()
    if draft is None:
        raise click.Abort()

    add_date = questionary.confirm(
        "Prefix with today's date? (YYYY-MM-DD-)",
        default=True,
        style=_questionary_style(),
    ).ask()
    if add_date is None:
        raise click.Abort()

    today = datetime.now()
    slug = slugify(title)
    filename = f"{today:%Y-%m-%d}-{slug}.md" if add_date else f"{slug}.md"
    target_dir = content_dir / section
    target_path = target_dir / filename

    conflicting = _find_slug(target_dir, slug)
    if conflicting is not None:
        raise click.ClickException(
            f"A post with slug '{slug}' already exists: {conflicting.name}"
        )

    frontmatter = {
        "title": title,
        "date": today.date(),
        "tags": [t.strip() for t in tags.split(",") if t.strip()],
        "draft": draft,
    }
    target_dir.mkdir(parents=True, exist_ok=True)
    header = yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True)
    target_path.write_text(f"---\n{header}---\n\n", encoding="utf-8")

    click.echo(f"Created {target_path.relative_to(project_root).as_posix()}")


def _get_sections(content_dir: Path) -> list[str]:
    """Return the content folders, skipping internal ``_`` directories."""
    return sorted(
        path.name
        for path in content_dir.iterdir()
        if path.is_dir() and not path.name.startswith(("_", "."))
    )


def _find_slug(folder: Path, slug: str) -> Path | None:
    """Return the Markdown file in ``folder`` whose slug is ``slug``, if any."""
    if not folder.exists():
        return None
    for path in sorted(folder.iterdir()):
        if path.is_file() and is_markdown(path) and slugify(source_stem(path)) == slug:
            return path
    return None


def _questionary_style():
    """Return consistent questionary style."""
    return questionary.Style(
        [
            ("qmark", "fg:cyan bold"),
            ("question", "bold"),
            ("answer", "fg:cyan"),
            ("pointer", "fg:cyan bold"),
            ("highlighted", "fg:cyan bold"),
            ("selected", "fg:cyan"),
        ]
    )


def main():
    """Entry point for the CLI application."""
    cli()


def _scaffold(root: Path) -> None:
    """Copy the default blog template into ``root`` and initialize git."""
    for src_path in sorted(_TEMPLATES_DIR.rglob("*")):
        if src_path.is_dir() or "__pycache__" in src_path.parts:
            continue
        dest_path = root / src_path.relative_to(_TEMPLATES_DIR)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src_path, dest_path)
    (root / ".gitignore").write_text("output/\n", encoding="utf-8")
    _try_git_init(root)


def _try_git_init(root: Path) -> None:
    """Initialize a git repository if git is available."""
    if os.environ.get("FOLIO_SKIP_GIT_INIT") == "1":
        return
    git_bin = shutil.which("git")
    if not git_bin:
        return
    try:
        subprocess.run(
            [git_bin, "init"],
            cwd=root,
            check=True,
            capture_output=True,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        click.echo(f"Skipped git init: {exc}", err=True)
