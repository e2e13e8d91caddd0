"""Asset processors for Folio.

Each processor handles one kind of asset file on its way from ``assets/``
to ``output/assets/``.

Key classes:
- ImageProcessor: Scales down oversized images with Pillow.
- JSProcessor: Minifies JavaScript with rjsmin.
- StaticAssetProcessor: Copies everything else unchanged.
- AssetProcessorRegistry: Picks the processor for a file by priority.
"""

from __future__ import annotations

import shutil
from abc import ABC, abstractmethod
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError
from rjsmin import jsmin


class BaseAssetProcessor(ABC):
    """Base class for asset processors."""

    @property
    @abstractmethod
    def priority(self) -> int:
        """Return processor priority (higher = checked first)."""
        ...

    @abstractmethod
    def can_process(self, path: Path) -> bool:
        ...

    @abstractmethod
    def process(self, source: Path, dest: Path) -> bool:
        """Process ``source`` into ``dest``; return True on success."""
        ...

    def ensure_dest_dir(self, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)


class ImageProcessor(BaseAssetProcessor):
    """Resizes raster images wider than ``max_width``.

    Images within the limit (or every image, when no limit is set) are
    copied byte-for-byte. Animated images are never resized.

    Attributes:
        max_width: Maximum output width in pixels, or None for no limit.
    """

    SUPPORTED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".gif"}

    def __init__(self, max_width: int | None = None):
        self.max_width = max_width

    @property
    def priority(self) -> int:
        return 100

    def can_process(self, path: Path) -> bool:
        return path.suffix.lower() in self.SUPPORTED_EXTENSIONS

    def process(self, source: Path, dest: Path) -> bool:
        self.ensure_dest_dir(dest)
        if self.max_width:
            try:
                if self._resize(source, dest):
                    return True
            except (UnidentifiedImageError, OSError) as exc:
                print(f"Could not resize {source.name} ({exc}); copying as-is.")
        shutil.copy2(source, dest)
        return True

    def _resize(self, source: Path, dest: Path) -> bool:
        """Write a scaled copy of ``source``; return False if none was needed."""
        with Image.open(source) as img:
            if img.width <= self.max_width or getattr(img, "is_animated", False):
                return False
            image_format = img.format
            img = ImageOps.exif_transpose(img)
            height = round(img.height * self.max_width / img.width)
            resized = img.resize((self.max_width, height), Image.Resampling.LANCZOS)
            resized.save(dest, format=image_format)
        return True


class JSProcessor(BaseAssetProcessor):
    """Minifies JavaScript files with rjsmin."""

    @property
    def priority(self) -> int:
        return 80

    def can_process(self, path: Path) -> bool:
        return path.suffix.lower() == ".js" and not path.name.endswith(".min.js")

    def process(self, source: Path, dest: Path) -> bool:
        self.ensure_dest_dir(dest)
        with open(source, encoding="utf-8") as f_in:
            minified = jsmin(f_in.read())
        with open(dest, "w", encoding="utf-8") as f_out:
            f_out.write(minified)
        return True


class StaticAssetProcessor(BaseAssetProcessor):
    """Copies assets that need no processing (CSS, fonts, SVG, video)."""

    @property
    def priority(self) -> int:
        return 0

    def can_process(self, path: Path) -> bool:
        return True

    def process(self, source: Path, dest: Path) -> bool:
        self.ensure_dest_dir(dest)
        shutil.copy2(source, dest)
        return True


class AssetProcessorRegistry:
    """Registry of asset processors, consulted highest priority first."""

    def __init__(self):
        self._processors: list[BaseAssetProcessor] = []

    def register(self, processor: BaseAssetProcessor) -> None:
        self._processors.append(processor)
        self._processors.sort(key=lambda p: p.priority, reverse=True)

    def get_processor(self, path: Path) -> BaseAssetProcessor | None:
        for processor in self._processors:
            if processor.can_process(path):
                return processor
        return None

    def process(self, source: Path, dest: Path) -> bool:
        """Process an asset; return False if no processor accepts it."""
        processor = self.get_processor(source)
        if processor:
            return processor.process(source, dest)
        return False


def create_default_registry(image_max_width: int | None = None) -> AssetProcessorRegistry:
    """Create a registry with the image, JavaScript and fallback processors."""
    registry = AssetProcessorRegistry()
    registry.register(ImageProcessor(image_max_width))
    registry.register(JSProcessor())
    registry.register(StaticAssetProcessor())
    return registry
