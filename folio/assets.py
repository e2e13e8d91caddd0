"""Asset pipeline for Folio.

Copies ``assets/`` into ``output/assets/``, sending each file through the
processor registered for its type (see ``asset_processors``).
"""

from __future__ import annotations

from pathlib import Path

from .asset_processors import AssetProcessorRegistry, create_default_registry


class AssetPipeline:
    """Processes the project's static assets into the output directory.

    Attributes:
        project_root (Path): Root directory of the project.
        assets_dir (Path): Directory containing source assets.
        output_dir (Path): Directory where processed assets are written.
        processor_registry (AssetProcessorRegistry): Registry of asset processors.
    """

    def __init__(
        self,
        project_root: Path,
        output_dir: Path,
        processor_registry: AssetProcessorRegistry | None = None,
        image_max_width: int | None = None,
    ):
        self.project_root = project_root
        self.assets_dir = project_root / "assets"
        self.output_dir = output_dir
        self.processor_registry = processor_registry or create_default_registry(
            image_max_width
        )

    def run(self) -> list[Path]:
        """Process every asset file.

        Hidden files (``.DS_Store`` and the like) are skipped.

        Returns:
            Output paths written, in sorted source order.
        """
        if not self.assets_dir.exists():
            return []

        target = self.output_dir / "assets"
        written: list[Path] = []
        for item in sorted(self.assets_dir.rglob("*")):
            if item.is_dir():
                continue
            rel = item.relative_to(self.assets_dir)
            if any(part.startswith(".") for part in rel.parts):
                continue
            dest = target / rel
            if self.processor_registry.process(item, dest):
                written.append(dest)
        return written
