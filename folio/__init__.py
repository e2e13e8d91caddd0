"""Folio static blog generator.

This package builds a personal technical blog from Markdown files with YAML
front-matter. Pages are rendered through Jinja2 layouts, shortcodes embed
figures, galleries and videos, and the build emits tag/author listings,
an RSS feed and a sitemap.

The main entry point is the CLI module, which provides commands for scaffolding
new blogs, creating posts, building the site and running the development server.
"""

__all__ = ["__version__"]
__version__ = "0.3.0"
