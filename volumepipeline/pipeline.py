"""
Main pipeline orchestration for volume processing.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable

from . import imageops
from .config import PipelineConfig
from .crop import AutoCrop, crop_pages
from .doublepage import DoublePageProcessor, DoublePageReport, PageOps
from .errors import PipelineError
from .merger import PageMerger
from .pages import PageStore, Volume, natural_key
from .progress import ProgressReporter, ProgressSink
from .writer import DirectoryWriter

logger = logging.getLogger(__name__)

ProgressFactory = Callable[[str], ProgressSink]


def terminal_progress(desc: str) -> ProgressSink:
    return ProgressReporter(desc=desc, unit="pages")


class VolumeState(Enum):
    """Where a volume is in the pipeline."""

    ACQUIRED = "acquired"
    CROPPED = "cropped"
    DOUBLE_PROCESSED = "double_processed"
    READY = "ready"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class VolumeResult:
    """Result of running the pipeline for one volume."""

    volume_id: str
    state: VolumeState | None = None
    pages: PageStore | None = None
    history: list[VolumeState] = field(default_factory=list)
    report: DoublePageReport | None = None
    message: str = ""
    stage: str = ""  # Stage currently running, or the one that failed

    @property
    def success(self) -> bool:
        return self.state == VolumeState.READY

    def enter(self, state: VolumeState) -> None:
        self.state = state
        self.history.append(state)


class VolumePipeline:
    """Runs acquisition and the image stages for one volume at a time.

    Stages run strictly in the order autocrop -> (split | rotate-only), each
    optional per configuration. Any stage failure moves the volume to
    FAILED; nothing of it is handed on.

    Usage:
        config = PipelineConfig(autocrop=True, rotate_and_split=True, gamma=0.8)
        pipeline = VolumePipeline(config, merger=PageMerger(network, disk))
        result = pipeline.run(volume)
    """

    def __init__(
        self,
        config: PipelineConfig,
        merger: PageMerger | None = None,
        page_ops: PageOps | None = None,
        auto_crop: AutoCrop = imageops.auto_crop,
        progress_factory: ProgressFactory = terminal_progress,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: Pipeline configuration
            merger: Page acquisition; required by run() but not by process()
            page_ops: Double-page image capabilities
            auto_crop: Cropping function
            progress_factory: Creates a progress sink for a description
        """
        self.config = config
        self.merger = merger
        self.auto_crop = auto_crop
        self.progress_factory = progress_factory
        self.double_pages = DoublePageProcessor(
            ops=page_ops,
            gamma=config.gamma,
            gamma_workers=config.gamma_workers,
            right_to_left=config.right_to_left,
            strict=config.strict_transforms,
        )
        self._setup_logging()

    def _setup_logging(self) -> None:
        """Ensure logging is configured.

        Only sets up a basic config if no handlers are configured,
        allowing the CLI to control logging setup.
        """
        if not logging.root.handlers:
            logging.basicConfig(
                level=logging.INFO,
                format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            )

    def _stages(self) -> list[tuple[str, VolumeState, Callable]]:
        stages = []
        if self.config.autocrop:
            stages.append(("autocrop", VolumeState.CROPPED, self._crop))
        mode = self.config.double_page_mode
        if mode == "split":
            stages.append(("rotate_and_split", VolumeState.DOUBLE_PROCESSED, self._split))
        elif mode == "rotate":
            stages.append(("rotate_double_pages", VolumeState.DOUBLE_PROCESSED, self._rotate))
        return stages

    def acquire(self, volume: Volume) -> PageStore:
        """Fetch all pages of a volume from both sources."""
        if self.merger is None:
            raise RuntimeError("VolumePipeline needs a PageMerger to acquire pages")
        progress = self.progress_factory(f"Volume: {volume.identifier}")
        store = self.merger.merge(volume, progress)
        store.sort()
        return store

    def process(self, store: PageStore, result: VolumeResult | None = None) -> PageStore:
        """Run the configured image stages over already acquired pages.

        Args:
            store: Acquired pages (not modified)
            result: Optional result that records state transitions

        Returns:
            The transformed pages, in volume -> chapter -> page order

        Raises:
            PipelineError: From the first failing stage
        """
        for name, state, stage in self._stages():
            if result is not None:
                result.stage = name
            store = stage(store, result)
            if result is not None:
                result.enter(state)
        ordered = store.copy()
        ordered.sort()
        return ordered

    def run(self, volume: Volume) -> VolumeResult:
        """Acquire and process one volume.

        Failures are reported in the result, never raised, so callers can
        continue with the next volume.

        Returns:
            VolumeResult in state READY or FAILED
        """
        result = VolumeResult(volume_id=volume.identifier, stage="pages")

        try:
            store = self.acquire(volume)
            result.enter(VolumeState.ACQUIRED)
            logger.info(f"Volume {volume.identifier}: acquired {len(store)} pages")

            store = self.process(store, result)
            result.pages = store
            result.enter(VolumeState.READY)
            result.message = f"Processed {len(store)} pages"

        except PipelineError as e:
            result.enter(VolumeState.FAILED)
            result.message = f"{result.stage}: {e}"
            logger.error(f"Volume {volume.identifier} failed: {result.message}")

        except Exception as e:
            result.enter(VolumeState.FAILED)
            result.message = f"{result.stage}: {e}"
            logger.exception(f"Volume {volume.identifier} failed unexpectedly")

        return result

    def run_volumes(
        self,
        volumes: Iterable[Volume],
        writer: DirectoryWriter | None = None,
        force: bool = False,
    ) -> list[VolumeResult]:
        """Process volumes one after another, isolating failures.

        Args:
            volumes: Volumes to process (processed in natural id order)
            writer: Where finished volumes go; volumes it already holds are
                skipped unless force is set
            force: Reprocess volumes that were already written

        Returns:
            One result per volume
        """
        results = []
        for volume in sorted(volumes, key=lambda v: natural_key(v.identifier)):
            if writer is not None and writer.has(volume.identifier) and not force:
                progress = self.progress_factory(f"Volume: {volume.identifier}")
                progress.cancel("Skipped")
                result = VolumeResult(volume_id=volume.identifier, message="Already written")
                result.enter(VolumeState.SKIPPED)
                results.append(result)
                continue

            result = self.run(volume)
            if result.success and writer is not None:
                progress = self.progress_factory("Writing...")
                try:
                    writer.write(volume.identifier, result.pages, progress)
                except OSError as e:
                    progress.cancel("Error")
                    result.enter(VolumeState.FAILED)
                    result.message = f"write: {e}"
                    logger.error(f"Volume {volume.identifier} failed: {result.message}")
            results.append(result)

        return results

    def _crop(self, store: PageStore, result: VolumeResult | None) -> PageStore:
        return crop_pages(
            store,
            tolerance=self.config.crop_tolerance,
            auto_crop=self.auto_crop,
            progress=self.progress_factory("Cropping.."),
        )

    def _split(self, store: PageStore, result: VolumeResult | None) -> PageStore:
        pages, report = self.double_pages.rotate_and_split(
            store, progress=self.progress_factory("Splitting..")
        )
        if result is not None:
            result.report = report
        return pages

    def _rotate(self, store: PageStore, result: VolumeResult | None) -> PageStore:
        pages, report = self.double_pages.rotate_double_pages(
            store, progress=self.progress_factory("Rotating..")
        )
        if result is not None:
            result.report = report
        return pages
