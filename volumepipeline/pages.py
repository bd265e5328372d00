"""
Page records and the ordered page store shared by all pipeline stages.
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Iterator

from PIL import Image

FILESYSTEM_GROUP = "Filesystem"

_NUMBER = re.compile(r"\d+(?:\.\d+)?")


def natural_key(value: str) -> tuple:
    """Sort key that orders '2' before '10' and '10' before '10.5'.

    Non-numeric identifiers sort after numeric ones, alphabetically.
    """
    match = _NUMBER.match(value.strip())
    if match and match.end() == len(value.strip()):
        return (0, float(match.group()), value)
    return (1, 0.0, value)


class Origin(Enum):
    """Where a chapter's pages come from."""

    NETWORK = "network"
    DISK = "disk"


@dataclass(frozen=True)
class ChapterInfo:
    """Metadata for one chapter of a volume.

    Attributes:
        identifier: Chapter identifier (e.g. '12', '12.5')
        volume_id: Identifier of the owning volume
        origin: Network or disk
        group: Group label, 'Filesystem' for chapters loaded from disk
        path: Directory holding the page images (disk chapters)
        page_urls: Page image URLs in reading order (network chapters)
    """

    identifier: str
    volume_id: str
    origin: Origin = Origin.NETWORK
    group: str = ""
    path: Path | None = None
    page_urls: tuple[str, ...] = ()

    @property
    def sort_key(self) -> tuple:
        return natural_key(self.identifier)


@dataclass
class Volume:
    """An ordered collection of chapters packaged into one document."""

    identifier: str
    chapters: list[ChapterInfo] = field(default_factory=list)

    def sorted_chapters(self) -> list[ChapterInfo]:
        return sorted(self.chapters, key=lambda c: c.sort_key)

    def chapters_from(self, origin: Origin) -> list[ChapterInfo]:
        """Chapters of one origin, in reading order."""
        return [c for c in self.sorted_chapters() if c.origin is origin]


@dataclass(frozen=True)
class Page:
    """One page image belonging to one chapter of one volume.

    Pages are immutable: stages that change pixels or identifiers put a new
    record produced by with_image()/with_id() into their output store.
    """

    volume_id: str
    chapter_id: str
    page_id: int
    image: Image.Image = field(compare=False, repr=False)
    origin: Origin = Origin.NETWORK

    def with_image(self, image: Image.Image) -> "Page":
        return replace(self, image=image)

    def with_id(self, page_id: int, image: Image.Image | None = None) -> "Page":
        if image is None:
            return replace(self, page_id=page_id)
        return replace(self, page_id=page_id, image=image)

    @property
    def key(self) -> tuple[str, int]:
        """(chapter_id, page_id) pair that must be unique within a volume."""
        return (self.chapter_id, self.page_id)


class PageStore:
    """Ordered collection of pages for a single volume.

    The store is a plain in-memory container: appending performs no
    uniqueness check, consumers verify that where they need it.
    """

    def __init__(self, pages: Iterable[Page] | None = None) -> None:
        self._pages: list[Page] = list(pages) if pages is not None else []

    def __len__(self) -> int:
        return len(self._pages)

    def __iter__(self) -> Iterator[Page]:
        return iter(self._pages)

    def __getitem__(self, index: int) -> Page:
        return self._pages[index]

    def __repr__(self) -> str:
        return f"PageStore({len(self._pages)} pages)"

    def append(self, pages: Iterable[Page] | Page) -> None:
        """Add one page or several pages to the end of the store."""
        if isinstance(pages, Page):
            self._pages.append(pages)
        else:
            self._pages.extend(pages)

    def sort_by_page_id(self) -> None:
        """Stable ascending sort by page identifier over the whole store."""
        self._pages.sort(key=lambda p: p.page_id)

    def sort(self) -> None:
        """Restore the default volume -> chapter -> page order."""
        self._pages.sort(
            key=lambda p: (natural_key(p.volume_id), natural_key(p.chapter_id), p.page_id)
        )

    def filter(self, predicate: Callable[[Page], bool]) -> Iterator[Page]:
        """Lazily yield the pages matching predicate, without copying images."""
        return (page for page in self._pages if predicate(page))

    def copy(self) -> "PageStore":
        return PageStore(self._pages)

    def find_duplicates(self) -> list[tuple[str, int]]:
        """Return (chapter_id, page_id) pairs used by more than one page."""
        seen: set[tuple[str, int]] = set()
        duplicates: list[tuple[str, int]] = []
        for page in self._pages:
            if page.key in seen and page.key not in duplicates:
                duplicates.append(page.key)
            seen.add(page.key)
        return duplicates

    @classmethod
    def concat(cls, *stores: "PageStore") -> "PageStore":
        merged = cls()
        for store in stores:
            merged.append(store)
        return merged
