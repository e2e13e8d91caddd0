from pathlib import Path

import pytest
from PIL import Image

from folio.asset_processors import ImageProcessor, create_default_registry
from folio.asset_resolver import AssetNotFoundError, DefaultAssetPathResolver
from folio.assets import AssetPipeline


def make_image(path: Path, size=(400, 200)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, (200, 30, 30)).save(path)
    return path


def test_image_processor_scales_down_wide_images(tmp_path):
    source = make_image(tmp_path / "wide.png")
    dest = tmp_path / "out" / "wide.png"
    assert ImageProcessor(max_width=100).process(source, dest)
    with Image.open(dest) as img:
        assert img.size == (100, 50)
        assert img.format == "PNG"


def test_image_processor_copies_when_within_limit(tmp_path):
    source = make_image(tmp_path / "small.png", size=(80, 40))
    dest = tmp_path / "out" / "small.png"
    ImageProcessor(max_width=100).process(source, dest)
    assert dest.read_bytes() == source.read_bytes()

    dest = tmp_path / "out" / "unlimited.png"
    ImageProcessor().process(make_image(tmp_path / "big.png"), dest)
    assert dest.read_bytes() == (tmp_path / "big.png").read_bytes()


def test_image_processor_copies_unreadable_images(tmp_path, capsys):
    source = tmp_path / "broken.png"
    source.write_bytes(b"not really a png")
    dest = tmp_path / "out" / "broken.png"
    assert ImageProcessor(max_width=100).process(source, dest)
    assert dest.read_bytes() == b"not really a png"
    assert "Could not resize broken.png" in capsys.readouterr().out


def test_asset_pipeline_processes_assets(tmp_path):
    assets = tmp_path / "assets"
    (assets / "js").mkdir(parents=True)
    (assets / "js" / "app.js").write_text("function  add(a, b) {\n  // sum\n  return a + b;\n}\n")
    (assets / "js" / "lib.min.js").write_text("var  keep = 1;\n")
    (assets / "css").mkdir()
    (assets / "css" / "main.css").write_text("body { color: red; }\n")
    (assets / ".DS_Store").write_text("junk")
    make_image(assets / "images" / "posts" / "hero.png")

    output = tmp_path / "output"
    written = AssetPipeline(tmp_path, output, image_max_width=100).run()

    rels = [p.relative_to(output).as_posix() for p in written]
    assert rels == [
        "assets/css/main.css",
        "assets/images/posts/hero.png",
        "assets/js/app.js",
        "assets/js/lib.min.js",
    ]
    minified = (output / "assets" / "js" / "app.js").read_text()
    assert "// sum" not in minified
    assert "return a+b" in minified
    assert (output / "assets" / "js" / "lib.min.js").read_text() == "var  keep = 1;\n"
    assert not (output / "assets" / ".DS_Store").exists()
    with Image.open(output / "assets" / "images" / "posts" / "hero.png") as img:
        assert img.width == 100


def test_asset_pipeline_without_assets_dir(tmp_path):
    assert AssetPipeline(tmp_path, tmp_path / "output").run() == []


def test_registry_picks_processor_by_priority():
    registry = create_default_registry(640)
    assert type(registry.get_processor(Path("a.jpg"))).__name__ == "ImageProcessor"
    assert type(registry.get_processor(Path("a.js"))).__name__ == "JSProcessor"
    assert type(registry.get_processor(Path("a.min.js"))).__name__ == "StaticAssetProcessor"
    assert type(registry.get_processor(Path("a.svg"))).__name__ == "StaticAssetProcessor"


def test_asset_resolver(tmp_path):
    assets = tmp_path / "assets"
    (assets / "images" / "icons").mkdir(parents=True)
    (assets / "images" / "icons" / "star.svg").write_text("<svg/>")
    (assets / "images" / "logo.png").write_bytes(b"png")
    resolver = DefaultAssetPathResolver(assets)

    assert resolver.img_path("logo") == "/assets/images/logo.png"
    assert resolver.img_path("icons/star") == "/assets/images/icons/star.svg"
    assert resolver.img_path("logo.png") == "/assets/images/logo.png"

    with pytest.raises(AssetNotFoundError) as excinfo:
        resolver.css_path("missing")
    assert excinfo.value.asset_type == "CSS"
    assert excinfo.value.searched_paths == [assets / "css" / "missing.css"]

    with pytest.raises(ValueError):
        resolver.resolve("x", "audio")

    resolver.set_url_generator(lambda p: f"https://cdn.example.com{p}")
    assert resolver.img_path("logo") == "https://cdn.example.com/assets/images/logo.png"


def test_asset_resolver_url_exists(tmp_path):
    assets = tmp_path / "assets"
    (assets / "images" / "posts").mkdir(parents=True)
    (assets / "images" / "posts" / "my photo.png").write_bytes(b"png")
    resolver = DefaultAssetPathResolver(assets)
    assert resolver.url_exists("/assets/images/posts/my%20photo.png")
    assert resolver.url_exists("/assets/images/posts/my%20photo.png?v=2")
    assert not resolver.url_exists("/assets/images/posts/other.png")
    assert not resolver.url_exists("/images/posts/my%20photo.png")
