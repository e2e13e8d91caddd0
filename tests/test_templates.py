from datetime import datetime

import pytest

from folio.asset_resolver import AssetNotFoundError
from folio.collections import PageCollection, build_taxonomy
from folio.content import Heading, Page
from folio.listings import Listing, paginate
from folio.projects import Project
from folio.templates import TemplateEngine, datefmt, render_toc


def make_page(site, title="Hello", url="/hello/", layout="default", **overrides):
    values = dict(
        title=title,
        body="Hi",
        content="<p>Hi</p>",
        summary="Hi",
        description="Hi",
        excerpt="Hi",
        url=url,
        slug=url.strip("/").split("/")[-1] or "index",
        date=datetime(2024, 1, 15),
        tags=[],
        authors=[],
        draft=False,
        layout=layout,
        group="",
        path=site / "index.md",
        folder="",
        filename="index.md",
        source_type="markdown",
    )
    values.update(overrides)
    return Page(**values)


def test_template_engine_renders_with_layout(tmp_path):
    site = tmp_path / "content"
    (site / "_layouts").mkdir(parents=True)
    (site / "_layouts" / "default.html.jinja").write_text(
        "<title>{{ current_page.title }} | {{ data.title }}</title>"
        "{{ page_content }}{{ url_for('about/') }}",
        encoding="utf-8",
    )
    engine = TemplateEngine(site, {"title": "My Blog"}, root_url="https://example.com")
    page = make_page(site, title="Tips <&> Tricks")
    engine.update_collections([page], {})

    rendered = engine.render_page(page)
    assert "<title>Tips &lt;&amp;&gt; Tricks | My Blog</title>" in rendered
    assert "<p>Hi</p>" in rendered
    assert "https://example.com/about/" in rendered


def test_url_for(tmp_path):
    engine = TemplateEngine(tmp_path, {})
    assert engine._url_for("assets/app.js") == "/assets/app.js"
    assert engine._url_for("http://cdn.com/lib.js") == "http://cdn.com/lib.js"
    assert engine._url_for("/posts/") == "/posts/"

    rooted = TemplateEngine(tmp_path, {"root_url": "https://root.com/"})
    assert rooted._url_for("/posts/") == "https://root.com/posts/"


def test_jinja_pages_see_collections_and_data(tmp_path):
    site = tmp_path / "content"
    site.mkdir()
    engine = TemplateEngine(site, {"title": "Blog"})
    older = make_page(site, title="Older", url="/posts/older/", group="posts",
                      date=datetime(2024, 1, 1), path=site / "posts" / "older.md")
    newer = make_page(site, title="Newer", url="/posts/newer/", group="posts",
                      date=datetime(2024, 2, 1), path=site / "posts" / "newer.md")
    home = make_page(
        site,
        title="Home",
        url="/",
        source_type="jinja",
        path=site / "index.html.jinja",
        content="{{ data.title }}:{% for p in pages.posts() %}{{ p.title }},{% endfor %}",
    )
    engine.update_collections([older, newer, home], {})
    rendered = engine.render_page(home)
    assert "Blog:Newer,Older," in rendered


def test_missing_layout_falls_back_to_default(tmp_path):
    site = tmp_path / "content"
    (site / "_layouts").mkdir(parents=True)
    (site / "_layouts" / "default.html.jinja").write_text(
        "[{{ page_content }}]", encoding="utf-8"
    )
    engine = TemplateEngine(site, {})
    page = make_page(site, layout="missing-layout")
    assert engine.render_page(page) == "[<p>Hi</p>]"


def test_builtin_post_layout_links_tags_and_neighbours(tmp_path):
    site = tmp_path / "content"
    site.mkdir()
    engine = TemplateEngine(site, {"title": "Blog"})
    older = make_page(site, title="Older", url="/posts/older/", group="posts")
    post = make_page(
        site,
        title="Current",
        url="/posts/current/",
        layout="post",
        group="posts",
        tags=["swift"],
        authors=["Jane Doe"],
        toc=[Heading("a", "A", 2), Heading("b", "B", 3), Heading("c", "C", 2)],
    )
    post.previous = older
    engine.update_collections([older, post], {"tags": build_taxonomy("tags", [post])})

    rendered = engine.render_page(post)
    assert "<h1>Current</h1>" in rendered
    assert 'href="/tags/swift/"' in rendered
    assert '<a href="/posts/older/" rel="prev">' in rendered
    assert 'rel="next"' not in rendered
    assert 'href="#b"' in rendered
    assert "January 15, 2024" in rendered
    assert "Jane Doe" in rendered


def test_builtin_list_layout_paginates(tmp_path):
    site = tmp_path / "content"
    site.mkdir()
    engine = TemplateEngine(site, {})
    posts = [
        make_page(site, title=f"Post {n}", url=f"/posts/p{n}/", date=datetime(2024, 1, n))
        for n in range(1, 4)
    ]
    engine.update_collections(posts, {})
    first, second = paginate(PageCollection(posts).sorted(), 2, "/posts/")
    listing = Listing(
        title="Posts",
        url=second.url,
        kind="section",
        layout="list",
        pages=PageCollection(posts),
        paginator=second,
    )
    rendered = engine.render_listing(listing)
    assert "Post 1" in rendered
    assert "Post 3" not in rendered
    assert 'href="/posts/" rel="prev"' in rendered
    assert "Page 2 of 2" in rendered


def test_builtin_projects_layout(tmp_path):
    site = tmp_path / "content"
    site.mkdir()
    projects = [
        Project("Habit Grid", "https://apps.apple.com/app/id1", "Tracker", "projects/grid.png"),
        Project("Notes", "/posts/notes/"),
    ]
    engine = TemplateEngine(site, {}, projects=projects)
    page = make_page(site, title="Projects", url="/projects/", layout="projects")
    rendered = engine.render_page(page)
    assert 'src="/assets/images/projects/grid.png"' in rendered
    assert 'href="https://apps.apple.com/app/id1" rel="noopener"' in rendered
    assert 'href="/posts/notes/"' in rendered


def test_asset_helpers(tmp_path):
    site = tmp_path / "content"
    site.mkdir()
    (tmp_path / "assets" / "css").mkdir(parents=True)
    (tmp_path / "assets" / "css" / "main.css").write_text("body{}", encoding="utf-8")
    engine = TemplateEngine(site, {}, root_url="https://example.com")
    assert engine.render_string("{{ css_path('main') }}", {}) == (
        "https://example.com/assets/css/main.css"
    )
    with pytest.raises(AssetNotFoundError):
        engine.render_string("{{ js_path('missing') }}", {})


def test_filters_and_toc(tmp_path):
    engine = TemplateEngine(tmp_path, {})
    rendered = engine.render_string(
        "{{ d | datefmt }}|{{ d | rfc822 }}", {"d": datetime(2024, 1, 5)}
    )
    assert rendered == "January 5, 2024|Fri, 05 Jan 2024 00:00:00 +0000"
    assert datefmt(datetime(2024, 3, 9), "%Y/%m/%d") == "2024/03/09"

    page = make_page(tmp_path, toc=[Heading("a", "A", 2), Heading("b", "B <3", 3), Heading("c", "C", 2)])
    assert str(render_toc(page)) == (
        '<ul><li><a href="#a">A</a><ul><li><a href="#b">B &lt;3</a></li></ul></li>'
        '<li><a href="#c">C</a></li></ul>'
    )
    assert str(render_toc(make_page(tmp_path))) == ""
