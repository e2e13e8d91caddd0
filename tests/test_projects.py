import pytest

from folio.errors import BuildError
from folio.projects import Project, load_projects, missing_project_images, parse_project


def write_projects(tmp_path, text):
    data = tmp_path / "data"
    data.mkdir(exist_ok=True)
    (data / "projects.yaml").write_text(text, encoding="utf-8")
    return data / "projects.yaml"


def test_load_projects_from_list(tmp_path):
    write_projects(
        tmp_path,
        "- title: Habit Grid\n"
        "  link: https://apps.apple.com/app/id1\n"
        "  description: >\n"
        "    A SwiftUI habit\n"
        "    tracker.\n"
        "  image: /projects/grid.png\n"
        "- title: Notes\n"
        "  link: /posts/notes/\n",
    )
    projects = load_projects(tmp_path)
    assert projects == [
        Project("Habit Grid", "https://apps.apple.com/app/id1", "A SwiftUI habit tracker.", "projects/grid.png"),
        Project("Notes", "/posts/notes/"),
    ]
    assert projects[0].is_external
    assert projects[0].image_url == "/assets/images/projects/grid.png"
    assert not projects[1].is_external
    assert projects[1].image_url is None


def test_load_projects_accepts_mapping_form(tmp_path):
    write_projects(tmp_path, "projects:\n  - title: Notes\n    link: /notes/\n")
    assert [p.title for p in load_projects(tmp_path)] == ["Notes"]


def test_load_projects_without_file(tmp_path):
    assert load_projects(tmp_path) == []
    write_projects(tmp_path, "")
    assert load_projects(tmp_path) == []


@pytest.mark.parametrize(
    "text, message",
    [
        ("- link: /a/\n", "'title' is required"),
        ("- title: A\n  link: ftp://a\n", "'link' must be"),
        ("- title: A\n  link: /a/\n  description: [x]\n", "'description' must be"),
        ("- just a string\n", "expected a mapping"),
        ("title: A\n", "Expected a list"),
        ("- title: [unclosed\n", "Invalid YAML"),
    ],
)
def test_invalid_projects_are_build_errors(tmp_path, text, message):
    path = write_projects(tmp_path, text)
    with pytest.raises(BuildError) as excinfo:
        load_projects(tmp_path)
    assert message in excinfo.value.message
    assert excinfo.value.source_path == path


def test_parse_project_names_the_entry():
    with pytest.raises(ValueError, match=r"entry 2 \(Grid\)"):
        parse_project({"title": "Grid", "link": "nope"}, 2)


def test_missing_project_images(tmp_path):
    (tmp_path / "images" / "projects").mkdir(parents=True)
    (tmp_path / "images" / "projects" / "a.png").write_bytes(b"png")
    projects = [
        Project("A", "/a/", image="projects/a.png"),
        Project("B", "/b/", image="projects/b.png"),
        Project("C", "/c/"),
    ]
    assert missing_project_images(projects, tmp_path) == [projects[1]]
