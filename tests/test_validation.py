from datetime import datetime
from pathlib import Path

from folio.projects import Project
from folio.validation import SiteValidator


class FakePage:
    def __init__(self, url, content="", path=None):
        self.url = url
        self.content = content
        self.path = path or Path("content", url.strip("/") + ".md")
        self.date = datetime(2024, 1, 1)
        self.previous = None
        self.next = None


def make_output(tmp_path):
    output = tmp_path / "output"
    for rel in ("index.html", "posts/index.html", "posts/hello/index.html", "rss.xml"):
        target = output / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text("<html></html>", encoding="utf-8")
    (tmp_path / "assets" / "images" / "posts").mkdir(parents=True)
    (tmp_path / "assets" / "images" / "posts" / "chart.png").write_bytes(b"png")
    return output


def test_resolves_files_directories_and_relative_urls(tmp_path):
    validator = SiteValidator(tmp_path, make_output(tmp_path))
    assert validator.resolves("/", "/posts/")
    assert validator.resolves("/", "/posts")
    assert validator.resolves("/", "/rss.xml")
    assert validator.resolves("/posts/", "hello/")
    assert validator.resolves("/posts/hello/", "../")
    assert validator.resolves("/posts/hello/", "/posts/hello/#intro")
    assert validator.resolves("/", "?page=2")
    assert not validator.resolves("/", "/posts/missing/")
    assert not validator.resolves("/", "/rss.xml/")
    assert not validator.resolves("/posts/", "../tags/")


def test_check_assets_reports_missing_shortcode_images(tmp_path):
    validator = SiteValidator(tmp_path, make_output(tmp_path))
    page = FakePage(
        "/posts/hello/",
        '<img src="/assets/images/posts/chart.png"><img src="/assets/images/posts/gone.png">'
        '<video src="/assets/videos/demo.mp4"></video><img src="https://cdn.example.com/x.png">',
    )
    validator.check_assets(page)
    assert [i.message for i in validator.issues] == [
        "Missing asset /assets/images/posts/gone.png",
        "Missing asset /assets/videos/demo.mp4",
    ]
    assert validator.issues[0].source_path == page.path


def test_check_links_reports_broken_internal_urls_once(tmp_path):
    validator = SiteValidator(tmp_path, make_output(tmp_path), "https://example.com/")
    source = Path("content/index.md")
    html = (
        '<a href="/posts/hello/">ok</a>'
        '<a href="https://example.com/posts/">absolute ok</a>'
        '<a href="https://example.com/nowhere/">absolute broken</a>'
        '<a href="/missing/">broken</a><a href="/missing/">again</a>'
        '<img src="/assets/images/none.png">'
        '<a href="https://other.com/missing/">external</a>'
        '<a href="mailto:me@example.com">mail</a><a href="#top">top</a>'
    )
    validator.check_links(source, "/", html)
    assert [i.message for i in validator.issues] == [
        "Broken internal link /nowhere/",
        "Broken internal link /missing/",
        "Broken internal reference /assets/images/none.png",
    ]
    assert all(i.source_path == source for i in validator.issues)


def test_lookalike_hosts_are_not_under_the_root_url(tmp_path):
    validator = SiteValidator(tmp_path, make_output(tmp_path), "https://example.com/")
    assert validator.strip_root("https://example.com") == "/"
    assert validator.strip_root("https://example.com/posts/") == "/posts/"
    assert validator.strip_root("https://example.com.evil.org/x") == "https://example.com.evil.org/x"
    assert validator.strip_root("https://example.community/") == "https://example.community/"

    html = (
        '<a href="https://example.com.evil.org/missing/">lookalike</a>'
        '<a href="https://example.community/missing/">other</a>'
    )
    validator.check_links(Path("content/index.md"), "/", html)
    assert validator.issues == []


def test_check_neighbours(tmp_path):
    validator = SiteValidator(tmp_path, make_output(tmp_path))
    older = FakePage("/posts/older/")
    current = FakePage("/posts/hello/")
    newer = FakePage("/posts/newer/")
    current.previous, current.next = older, newer
    validator.check_neighbours([current], {"/posts/hello/", "/posts/older/"})
    assert [i.message for i in validator.issues] == [
        "The next post /posts/newer/ was not built"
    ]


def test_check_projects(tmp_path):
    validator = SiteValidator(tmp_path, make_output(tmp_path))
    validator.check_projects(
        [
            Project("Chart", "/posts/hello/", image="posts/chart.png"),
            Project("Ghost", "/posts/ghost/", image="projects/ghost.png"),
            Project("Store", "https://apps.apple.com/app/id1"),
        ]
    )
    assert [i.message for i in validator.issues] == [
        "Project 'Ghost': missing image projects/ghost.png",
        "Project 'Ghost': broken link /posts/ghost/",
    ]
    assert validator.issues[0].source_path == tmp_path / "data" / "projects.yaml"
