"""Shortcode expansion for Folio.

Shortcodes are small macros embedded in Markdown::

    {{< figure src="widgets/timeline.png" caption="The timeline widget" >}}
    {{< youtube dQw4w9WgXcQ >}}
    {{< gallery >}}
    lock-screen.png "Lock screen"
    home-screen.png
    {{< /gallery >}}
    See [the previous part]({{< ref "posts/2023-05-02-swiftui-grids.md" >}}).

Expansion happens in two steps around the Markdown parser. ``expand``
replaces every shortcode with an inert placeholder token and renders its
HTML; ``restore`` swaps the rendered HTML back in after Markdown has run,
so the parser never sees (or mangles) the generated markup.

Each shortcode is a Jinja template named ``_shortcodes/<name>.html.jinja``,
looked up in the site directory first and in the built-in templates second.
``ref`` is handled here directly: it produces a ``folio-ref:`` URL that the
content processor resolves once every page is known.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape
from markupsafe import Markup

from .html_utils import escape_html
from .utils import media_url

BUILTIN_SITE_DIR = Path(__file__).parent / "templates" / "default" / "content"

REF_SCHEME = "folio-ref:"

ESCAPED_RE = re.compile(r"\{\{<\s*/\*(?P<inner>.*?)\*/\s*>\}\}", re.DOTALL)
TAG_RE = re.compile(
    r"\{\{<\s*(?P<close>/)?\s*(?P<name>[A-Za-z][\w-]*)(?P<args>.*?)>\}\}", re.DOTALL
)
ARG_RE = re.compile(
    r"""\s*(?:(?P<key>[A-Za-z_][\w-]*)=)?
    (?:"(?P<dq>(?:[^"\\]|\\.)*)"|'(?P<sq>[^']*)'|`(?P<bq>[^`]*)`|(?P<bare>[^\s"'`=]+))""",
    re.VERBOSE | re.DOTALL,
)


class ShortcodeError(ValueError):
    """Raised for unknown, unclosed or malformed shortcodes."""


def parse_arguments(text: str) -> tuple[list[str], dict[str, str]]:
    """Parse shortcode arguments into positional and named values.

    Examples:
        >>> parse_arguments('abc key="a b" other=1')
        (['abc'], {'key': 'a b', 'other': '1'})

    Raises:
        ShortcodeError: If the text contains unbalanced quotes or stray ``=``.
    """
    args: list[str] = []
    params: dict[str, str] = {}
    text = text.strip()
    if text.endswith("/"):
        text = text[:-1].rstrip()
    pos = 0
    while pos < len(text):
        match = ARG_RE.match(text, pos)
        if not match or match.end() == pos:
            raise ShortcodeError(f"Malformed shortcode arguments: {text!r}")
        if match.group("dq") is not None:
            value = re.sub(r"\\(.)", r"\1", match.group("dq"))
        elif match.group("sq") is not None:
            value = match.group("sq")
        elif match.group("bq") is not None:
            value = match.group("bq")
        else:
            value = match.group("bare")
        if match.group("key"):
            params[match.group("key")] = value
        else:
            args.append(value)
        pos = match.end()
        while pos < len(text) and text[pos].isspace():
            pos += 1
    return args, params


@dataclass
class Expansion:
    """Markdown source with shortcodes replaced by placeholder tokens.

    Attributes:
        text: The source with placeholders in place of shortcodes.
        fragments: Rendered HTML for each placeholder token.
    """

    text: str
    fragments: dict[str, str] = field(default_factory=dict)

    def restore(self, html: str) -> str:
        """Substitute rendered shortcode HTML for placeholders in ``html``.

        A placeholder that is a paragraph of its own replaces the whole
        ``<p>`` element so block-level markup is not nested inside it.
        """
        for token, fragment in self.fragments.items():
            html = html.replace(f"<p>{token}</p>", fragment)
            html = html.replace(token, fragment)
        return html


class ShortcodeProcessor:
    """Expands shortcodes using Jinja templates.

    Attributes:
        site_dir: Directory containing site content and ``_shortcodes``.
        env: Jinja environment used for shortcode templates.
    """

    def __init__(self, site_dir: Path):
        self.site_dir = site_dir
        self.env = Environment(
            loader=FileSystemLoader([site_dir, BUILTIN_SITE_DIR]),
            autoescape=select_autoescape(["html", "xml", "html.jinja"]),
            keep_trailing_newline=False,
        )

    def expand(self, text: str, folder: str) -> Expansion:
        """Replace every shortcode in ``text`` with a placeholder.

        Args:
            text: Markdown source.
            folder: Folder of the page, used to resolve relative media paths.

        Returns:
            Expansion holding the placeholder text and rendered fragments.

        Raises:
            ShortcodeError: For unknown, unclosed or malformed shortcodes.
        """
        expansion = Expansion(text="")

        def stash(html: str) -> str:
            token = f"FOLIOSHORTCODE{len(expansion.fragments):04d}TOKEN"
            expansion.fragments[token] = html
            return token

        text = ESCAPED_RE.sub(
            lambda m: stash(escape_html("{{<" + m.group("inner") + ">}}")), text
        )
        tags = list(TAG_RE.finditer(text))
        out: list[str] = []
        pos = 0
        index = 0
        while index < len(tags):
            tag = tags[index]
            name = tag.group("name")
            if tag.group("close"):
                raise ShortcodeError(f"Closing shortcode '/{name}' has no opening tag")
            args, params = parse_arguments(tag.group("args"))
            closing = self._find_closing(tags, index)
            if closing is None:
                inner = None
                end = tag.end()
                index += 1
            else:
                inner = text[tag.end() : tags[closing].start()]
                end = tags[closing].end()
                index = closing + 1
            out.append(text[pos : tag.start()])
            out.append(stash(self.render(name, args, params, inner, folder)))
            pos = end
        out.append(text[pos:])
        expansion.text = "".join(out)
        return expansion

    def _find_closing(self, tags: list[re.Match], index: int) -> int | None:
        name = tags[index].group("name")
        for candidate in range(index + 1, len(tags)):
            tag = tags[candidate]
            if tag.group("name") == name:
                return candidate if tag.group("close") else None
        return None

    def render(
        self,
        name: str,
        args: list[str],
        params: dict[str, str],
        inner: str | None,
        folder: str,
    ) -> str:
        """Render a single shortcode to HTML.

        Raises:
            ShortcodeError: If no template exists for ``name``.
        """
        if name == "ref":
            return self._ref(args, params)
        try:
            template = self.env.get_template(f"_shortcodes/{name}.html.jinja")
        except TemplateNotFound:
            raise ShortcodeError(f"Unknown shortcode '{name}'") from None
        context: dict[str, Any] = {
            "name": name,
            "args": args,
            "params": params,
            "inner": Markup(inner or ""),
            "entries": self._entries(inner),
            "folder": folder,
            "resource": lambda src: media_url(src, folder),
        }
        return template.render(**context).strip()

    def _entries(self, inner: str | None) -> list[list[str]]:
        if not inner:
            return []
        entries = []
        for line in inner.splitlines():
            if line.strip():
                entries.append(parse_arguments(line)[0])
        return entries

    def _ref(self, args: list[str], params: dict[str, str]) -> str:
        target = params.get("path") or (args[0] if args else "")
        if not target:
            raise ShortcodeError("'ref' shortcode needs a target path")
        return f"{REF_SCHEME}{target.lstrip('/')}"
