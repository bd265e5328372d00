"""
Write processed volumes to an image directory.

Each volume becomes `<root>/volume_<id>/<chapter>/page_<id>.jpg`, ready to
be picked up by a document packager.
"""

import logging
from pathlib import Path

from .pages import PageStore
from .progress import NullProgress, ProgressSink

logger = logging.getLogger(__name__)


def safe_name(value: str) -> str:
    """Generate a safe path component from an identifier."""
    safe = "".join(c if c.isalnum() or c in " -_." else "_" for c in value)
    return safe.strip().replace(" ", "_")[:100] or "_"


class DirectoryWriter:
    """Stores processed pages as JPEG files, one directory per volume."""

    def __init__(self, root: Path, quality: int = 95) -> None:
        self.root = Path(root)
        self.quality = quality

    def volume_dir(self, volume_id: str) -> Path:
        return self.root / f"volume_{safe_name(volume_id)}"

    def has(self, volume_id: str) -> bool:
        """Whether a volume has already been written."""
        path = self.volume_dir(volume_id)
        return path.is_dir() and any(path.iterdir())

    def write(
        self,
        volume_id: str,
        pages: PageStore,
        progress: ProgressSink | None = None,
    ) -> Path:
        """Save every page of a volume.

        Args:
            volume_id: Volume identifier
            pages: Processed pages
            progress: Optional progress sink

        Returns:
            The volume directory
        """
        progress = progress or NullProgress()
        progress.increase_total(len(pages))

        out_dir = self.volume_dir(volume_id)
        for page in pages:
            chapter_dir = out_dir / safe_name(page.chapter_id)
            chapter_dir.mkdir(parents=True, exist_ok=True)
            image = page.image
            if image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
            image.save(chapter_dir / f"page_{page.page_id:04d}.jpg", "JPEG", quality=self.quality)
            progress.advance()

        progress.done()
        logger.info(f"Volume {volume_id}: wrote {len(pages)} pages to {out_dir}")
        return out_dir
