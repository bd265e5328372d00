"""
Double-page spread handling: rotation and splitting with page renumbering.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from PIL import Image

from . import imageops
from .errors import Indeterminate, TransformFailure
from .gamma import GammaTable, apply_table, build_table
from .pages import Page, PageStore
from .progress import NullProgress, ProgressSink

logger = logging.getLogger(__name__)


class OutcomeStatus(Enum):
    """Result of one rotate or split attempt."""

    APPLIED = "applied"
    UNCHANGED = "unchanged"  # Collaborator gave no usable result
    FAILED = "failed"  # Collaborator raised


@dataclass
class TransformOutcome:
    """What happened when rotating or splitting one page."""

    operation: str
    chapter_id: str
    page_id: int
    status: OutcomeStatus
    reason: str = ""


@dataclass
class DoublePageReport:
    """Summary of a double-page stage run."""

    pages_in: int = 0
    pages_out: int = 0
    double_pages: int = 0
    outcomes: list[TransformOutcome] = field(default_factory=list)

    def count(self, operation: str, status: OutcomeStatus = OutcomeStatus.APPLIED) -> int:
        return sum(1 for o in self.outcomes if o.operation == operation and o.status == status)

    @property
    def problems(self) -> list[TransformOutcome]:
        """Outcomes that left a page unchanged."""
        return [o for o in self.outcomes if o.status != OutcomeStatus.APPLIED]


@dataclass(frozen=True)
class PageOps:
    """Image capabilities used by the double-page stage.

    rotate and split return None when they have no usable result.
    """

    is_double_page: Callable[[Image.Image], bool] = imageops.is_double_page
    rotate: Callable[[Image.Image], Image.Image | None] = imageops.rotate_to_landscape
    split: Callable[[Image.Image], tuple[Image.Image, Image.Image] | None] = imageops.split_vertically


class OccupancySet:
    """Page identifiers already assigned, tracked per chapter."""

    def __init__(self) -> None:
        self._used: dict[str, set[int]] = defaultdict(set)

    def next_free(self, chapter_id: str, page_id: int) -> int:
        """Smallest identifier >= page_id not yet used in the chapter."""
        used = self._used[chapter_id]
        candidate = page_id
        while candidate in used:
            candidate += 1
        return candidate

    def mark(self, chapter_id: str, *page_ids: int) -> None:
        self._used[chapter_id].update(page_ids)

    def occupied(self, chapter_id: str) -> set[int]:
        return set(self._used.get(chapter_id, ()))


class DoublePageProcessor:
    """Rotates double-page spreads and optionally splits them in two.

    Problems with individual pages never abort the stage: the page is kept
    as it was and the outcome is logged and recorded in the report. With
    strict=True the first such problem raises Indeterminate instead.
    """

    def __init__(
        self,
        ops: PageOps | None = None,
        gamma: float = 1.0,
        gamma_workers: int | None = None,
        right_to_left: bool = True,
        strict: bool = False,
    ) -> None:
        self.ops = ops or PageOps()
        self.gamma = gamma
        self.gamma_workers = gamma_workers
        self.right_to_left = right_to_left
        self.strict = strict

    def rotate_double_pages(
        self,
        store: PageStore,
        progress: ProgressSink | None = None,
    ) -> tuple[PageStore, DoublePageReport]:
        """Rotate every double-page spread, keeping identifiers.

        Args:
            store: Input pages (not modified)
            progress: Optional progress sink

        Returns:
            Tuple of (pages sorted by page id, report)
        """
        progress = progress or NullProgress()
        progress.increase_total(len(store))

        pages = store.copy()
        pages.sort_by_page_id()
        report = DoublePageReport(pages_in=len(pages))
        output = PageStore()

        try:
            for page in pages:
                if self._is_double(page, page.image, report):
                    report.double_pages += 1
                    rotated = self._rotate(page, page.image, report)
                    if rotated is not None:
                        page = page.with_image(rotated)
                output.append(page)
                progress.advance()
        except Indeterminate:
            progress.cancel("Error")
            raise

        report.pages_out = len(output)
        progress.done()
        logger.info(
            f"Rotated {report.count('rotate')}/{report.double_pages} double pages "
            f"({len(report.problems)} left unchanged)"
        )
        return output, report

    def rotate_and_split(
        self,
        store: PageStore,
        progress: ProgressSink | None = None,
    ) -> tuple[PageStore, DoublePageReport]:
        """Gamma-adjust every page, then rotate and split double spreads.

        Pages are visited in ascending page id order. Each gets the smallest
        free identifier of its chapter at or above its own. A double spread
        keeps that slot for its rotated image and adds its two halves at the
        next two identifiers, the first half in reading order first.

        Raises:
            InvalidParameter: If the gamma value is not positive
            TransformFailure: If gamma adjustment fails for a page
            Indeterminate: In strict mode, for the first page left unchanged
        """
        progress = progress or NullProgress()
        table = build_table(self.gamma)
        progress.increase_total(len(store))

        pages = store.copy()
        pages.sort_by_page_id()
        report = DoublePageReport(pages_in=len(pages))
        occupied = OccupancySet()
        output = PageStore()

        try:
            for page in pages:
                self._split_page(page, table, occupied, output, report, progress)
                progress.advance()
        except Indeterminate:
            progress.cancel("Error")
            raise

        report.pages_out = len(output)
        progress.done()
        logger.info(
            f"Split {report.count('split')}/{report.double_pages} double pages: "
            f"{report.pages_in} -> {report.pages_out} pages"
        )
        return output, report

    def _split_page(
        self,
        page: Page,
        table: GammaTable,
        occupied: OccupancySet,
        output: PageStore,
        report: DoublePageReport,
        progress: ProgressSink,
    ) -> None:
        free_id = occupied.next_free(page.chapter_id, page.page_id)
        adjusted = self._adjust(page, table, progress)

        if not self._is_double(page, adjusted, report):
            output.append(page.with_id(free_id, adjusted))
            occupied.mark(page.chapter_id, free_id)
            return

        report.double_pages += 1
        rotated = self._rotate(page, adjusted, report)
        output.append(page.with_id(free_id, rotated if rotated is not None else adjusted))
        occupied.mark(page.chapter_id, free_id)

        halves = self._split(page, adjusted, report)
        if halves is not None:
            left, right = halves
            first, second = (right, left) if self.right_to_left else (left, right)
            output.append(page.with_id(free_id + 1, first))
            output.append(page.with_id(free_id + 2, second))
            occupied.mark(page.chapter_id, free_id + 1, free_id + 2)

    def _adjust(self, page: Page, table: GammaTable, progress: ProgressSink) -> Image.Image:
        try:
            return apply_table(page.image, table, workers=self.gamma_workers)
        except Exception as e:
            progress.cancel("Error")
            raise TransformFailure(page.chapter_id, page.page_id, e) from e

    def _is_double(self, page: Page, image: Image.Image, report: DoublePageReport) -> bool:
        try:
            return bool(self.ops.is_double_page(image))
        except Exception as e:
            self._record(report, "classify", page, OutcomeStatus.FAILED, str(e))
            return False

    def _rotate(self, page: Page, image: Image.Image, report: DoublePageReport) -> Image.Image | None:
        try:
            rotated = self.ops.rotate(image)
        except Exception as e:
            self._record(report, "rotate", page, OutcomeStatus.FAILED, str(e))
            return None
        if rotated is None:
            self._record(report, "rotate", page, OutcomeStatus.UNCHANGED, "no usable result")
            return None
        self._record(report, "rotate", page, OutcomeStatus.APPLIED)
        return rotated

    def _split(
        self,
        page: Page,
        image: Image.Image,
        report: DoublePageReport,
    ) -> tuple[Image.Image, Image.Image] | None:
        try:
            halves = self.ops.split(image)
        except Exception as e:
            self._record(report, "split", page, OutcomeStatus.FAILED, str(e))
            return None
        if halves is None:
            self._record(report, "split", page, OutcomeStatus.UNCHANGED, "no usable result")
            return None
        self._record(report, "split", page, OutcomeStatus.APPLIED)
        return halves

    def _record(
        self,
        report: DoublePageReport,
        operation: str,
        page: Page,
        status: OutcomeStatus,
        reason: str = "",
    ) -> None:
        outcome = TransformOutcome(operation, page.chapter_id, page.page_id, status, reason)
        report.outcomes.append(outcome)
        if status == OutcomeStatus.APPLIED:
            return

        logger.warning(
            f"{operation} left chapter {page.chapter_id} page {page.page_id} unchanged: {reason}"
        )
        if self.strict:
            raise Indeterminate(operation, page.chapter_id, page.page_id, reason)
