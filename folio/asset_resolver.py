"""Asset path resolver for Folio.

Templates call ``img_path('avatar')``, ``css_path('main')`` and friends;
this module turns those names into URLs and fails loudly when the file
does not exist.

Key classes:
- AssetKind: Where an asset type lives and which extensions it may have.
- DefaultAssetPathResolver: Resolves asset names to URLs.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote


class AssetNotFoundError(Exception):
    """Error raised when an asset file is not found.

    Attributes:
        asset_name: The name of the asset that was requested.
        asset_type: The type of asset (e.g., "image", "font", "js", "css").
        searched_paths: List of paths that were searched.
    """

    def __init__(
        self,
        asset_name: str,
        asset_type: str,
        searched_paths: list[Path],
    ):
        self.asset_name = asset_name
        self.asset_type = asset_type
        self.searched_paths = searched_paths
        paths_str = ", ".join(str(p) for p in searched_paths)
        super().__init__(
            f"{asset_type} asset '{asset_name}' not found. Searched: {paths_str}"
        )


@dataclass(frozen=True)
class AssetKind:
    """An asset type: its folder under ``assets/`` and accepted extensions.

    The first extension is the one tried first when the name has none.
    """

    label: str
    folder: str
    extensions: tuple[str, ...]


ASSET_KINDS = {
    "js": AssetKind("JavaScript", "js", ("js",)),
    "css": AssetKind("CSS", "css", ("css",)),
    "image": AssetKind("image", "images", ("png", "jpg", "jpeg", "gif", "svg", "webp")),
    "font": AssetKind("font", "fonts", ("woff2", "woff", "ttf", "otf", "eot")),
    "video": AssetKind("video", "videos", ("mp4", "webm", "mov")),
}


class DefaultAssetPathResolver:
    """Resolves asset names to URL paths under ``/assets``.

    Attributes:
        assets_dir: Directory containing source assets.
        url_generator: Function applied to every resolved URL path.
    """

    def __init__(
        self, assets_dir: Path, url_generator: Callable[[str], str] | None = None
    ):
        self.assets_dir = assets_dir
        self._url_generator = url_generator or (lambda x: x)

    def set_url_generator(self, url_generator: Callable[[str], str]) -> None:
        self._url_generator = url_generator

    def resolve(self, name: str, asset_type: str) -> str:
        """Resolve an asset name to its URL path.

        A name with a known extension must exist as given; a bare name is
        tried with each extension of the asset type in order.

        Args:
            name: Asset filename, with or without extension
                (``"logo"``, ``"logo.png"``, ``"icons/star"``).
            asset_type: One of ``js``, ``css``, ``image``, ``font``, ``video``.

        Raises:
            AssetNotFoundError: If the asset doesn't exist.
            ValueError: For an unknown asset type.
        """
        kind = ASSET_KINDS.get(asset_type)
        if kind is None:
            raise ValueError(f"Unknown asset type: {asset_type}")
        folder = self.assets_dir / kind.folder
        if name.rsplit(".", 1)[-1].lower() in kind.extensions and "." in name:
            candidates = [name]
        else:
            candidates = [f"{name}.{ext}" for ext in kind.extensions]
        searched = []
        for candidate in candidates:
            file_path = folder / candidate
            searched.append(file_path)
            if file_path.is_file():
                return self._url_generator(f"/assets/{kind.folder}/{candidate}")
        raise AssetNotFoundError(name, kind.label, searched)

    def js_path(self, name: str) -> str:
        return self.resolve(name, "js")

    def css_path(self, name: str) -> str:
        return self.resolve(name, "css")

    def img_path(self, name: str) -> str:
        return self.resolve(name, "image")

    def font_path(self, name: str) -> str:
        return self.resolve(name, "font")

    def video_path(self, name: str) -> str:
        return self.resolve(name, "video")

    def url_exists(self, url: str) -> bool:
        """Return True when a root-relative ``/assets/...`` URL has a source file."""
        path = url.split("#", 1)[0].split("?", 1)[0]
        if not path.startswith("/assets/"):
            return False
        return (self.assets_dir / unquote(path[len("/assets/") :])).is_file()
