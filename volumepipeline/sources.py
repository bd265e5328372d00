"""
Page sources: chapters on local disk and chapters listed in a JSON manifest
of page URLs.

Both sources are callables with the signature
`source(chapters, progress) -> PageStore` expected by PageMerger, and raise
on the first page they cannot load.

Cover images are not fetched: volumes are written as plain page directories
and nothing downstream consumes a cover.
"""

import io
import json
import logging
import re
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import httpx
from PIL import Image
from pydantic import BaseModel, ValidationError, field_validator

from .errors import ManifestError
from .pages import FILESYSTEM_GROUP, ChapterInfo, Origin, Page, PageStore, Volume, natural_key
from .progress import ProgressSink

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp")

_DIGITS = re.compile(r"(\d+)")


def page_sort_key(path: Path) -> tuple[int, str]:
    """Order page files by the first number in their name."""
    match = _DIGITS.search(path.stem)
    number = int(match.group(1)) if match else 10**9
    return (number, path.name.lower())


def _open_image(data: bytes | Path) -> Image.Image:
    source = io.BytesIO(data) if isinstance(data, bytes) else data
    with Image.open(source) as img:
        img.load()
        return img.copy()


# --- Disk -------------------------------------------------------------------


def load_disk_chapters(root: Path) -> list[ChapterInfo]:
    """Discover chapters stored as `<root>/<volume>/<chapter>/<pages>`.

    Args:
        root: Directory containing one subdirectory per volume

    Returns:
        Chapters in volume/chapter order
    """
    root = Path(root)
    if not root.is_dir():
        raise ManifestError(f"Disk directory does not exist: {root}")

    chapters = []
    for volume_dir in sorted((p for p in root.iterdir() if p.is_dir()), key=lambda p: natural_key(p.name)):
        for chapter_dir in sorted((p for p in volume_dir.iterdir() if p.is_dir()), key=lambda p: natural_key(p.name)):
            chapters.append(ChapterInfo(
                identifier=chapter_dir.name,
                volume_id=volume_dir.name,
                origin=Origin.DISK,
                group=FILESYSTEM_GROUP,
                path=chapter_dir,
            ))

    logger.info(f"Found {len(chapters)} chapters on disk in {root}")
    return chapters


class DiskSource:
    """Loads the page images of disk chapters."""

    def __init__(self, supported_extensions: tuple[str, ...] = SUPPORTED_EXTENSIONS) -> None:
        self.supported_extensions = supported_extensions

    def discover_pages(self, chapter_dir: Path) -> list[Path]:
        """Image files of a chapter in page order."""
        images = [
            p for p in chapter_dir.iterdir()
            if p.is_file() and p.suffix.lower() in self.supported_extensions
        ]
        return sorted(images, key=page_sort_key)

    def __call__(self, chapters: list[ChapterInfo], progress: ProgressSink) -> PageStore:
        store = PageStore()
        for chapter in chapters:
            if chapter.path is None:
                raise ValueError(f"chapter {chapter.identifier} has no directory")

            files = self.discover_pages(chapter.path)
            progress.increase_total(len(files))
            for page_id, path in enumerate(files):
                try:
                    image = _open_image(path)
                except OSError as e:
                    raise OSError(f"chapter {chapter.identifier}: {path.name}: {e}") from e
                store.append(Page(
                    volume_id=chapter.volume_id,
                    chapter_id=chapter.identifier,
                    page_id=page_id,
                    image=image,
                    origin=Origin.DISK,
                ))
                progress.advance()

        logger.debug(f"Loaded {len(store)} pages from disk")
        return store


# --- Network ----------------------------------------------------------------


class ManifestChapter(BaseModel):
    volume: str
    chapter: str
    group: str = ""
    pages: list[str]

    @field_validator("volume", "chapter", mode="before")
    @classmethod
    def _identifier_to_str(cls, value):
        return str(value)


class ChapterManifest(BaseModel):
    """JSON list of network chapters and their page URLs."""

    title: str = ""
    chapters: list[ManifestChapter]


def load_manifest(path: Path) -> tuple[str, list[ChapterInfo]]:
    """Read a chapter manifest.

    Returns:
        Tuple of (title, network chapters)

    Raises:
        ManifestError: If the file cannot be read or validated
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        manifest = ChapterManifest.model_validate(data)
    except OSError as e:
        raise ManifestError(f"Failed to read manifest {path}: {e}") from e
    except (json.JSONDecodeError, ValidationError) as e:
        raise ManifestError(f"Invalid manifest {path}: {e}") from e

    chapters = [
        ChapterInfo(
            identifier=entry.chapter,
            volume_id=entry.volume,
            origin=Origin.NETWORK,
            group=entry.group,
            page_urls=tuple(entry.pages),
        )
        for entry in manifest.chapters
    ]
    logger.info(f"Manifest lists {len(chapters)} network chapters")
    return manifest.title, chapters


class NetworkSource:
    """Downloads the page images of network chapters.

    Retries and rate limiting are left to the transport.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        threads: int = 4,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if threads < 1:
            raise ValueError(f"threads must be >= 1, got {threads}")
        self.timeout = timeout
        self.threads = threads
        self.headers = headers or {}
        self.transport = transport

    def __call__(self, chapters: list[ChapterInfo], progress: ProgressSink) -> PageStore:
        jobs = [
            (chapter, page_id, url)
            for chapter in chapters
            for page_id, url in enumerate(chapter.page_urls)
        ]
        progress.increase_total(len(jobs))

        with httpx.Client(
            timeout=self.timeout,
            headers=self.headers,
            transport=self.transport,
            follow_redirects=True,
        ) as client:

            def fetch(job: tuple[ChapterInfo, int, str]) -> Page:
                chapter, page_id, url = job
                response = client.get(url)
                response.raise_for_status()
                try:
                    image = _open_image(response.content)
                except OSError as e:
                    raise OSError(f"chapter {chapter.identifier}: {url}: {e}") from e
                progress.advance()
                return Page(
                    volume_id=chapter.volume_id,
                    chapter_id=chapter.identifier,
                    page_id=page_id,
                    image=image,
                    origin=Origin.NETWORK,
                )

            with ThreadPoolExecutor(max_workers=self.threads) as executor:
                pages = list(executor.map(fetch, jobs))

        logger.debug(f"Downloaded {len(pages)} pages")
        return PageStore(pages)


# --- Volumes ----------------------------------------------------------------


def assemble_volumes(chapters: list[ChapterInfo]) -> list[Volume]:
    """Group chapters into volumes.

    When the same chapter exists on disk and on the network, the disk copy
    wins.
    """
    by_key: dict[tuple[str, str], ChapterInfo] = {}
    for chapter in chapters:
        key = (chapter.volume_id, chapter.identifier)
        existing = by_key.get(key)
        if existing is None or (chapter.origin is Origin.DISK and existing.origin is not Origin.DISK):
            if existing is not None:
                logger.debug(f"Chapter {chapter.identifier}: preferring disk copy")
            by_key[key] = chapter

    volumes: dict[str, list[ChapterInfo]] = defaultdict(list)
    for chapter in by_key.values():
        volumes[chapter.volume_id].append(chapter)

    return [
        Volume(identifier=volume_id, chapters=volumes[volume_id])
        for volume_id in sorted(volumes, key=natural_key)
    ]
