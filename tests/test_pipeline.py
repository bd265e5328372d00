"""Tests for the volume pipeline orchestrator."""

import pytest
from PIL import Image
from volumepipeline.config import PipelineConfig
from volumepipeline.errors import InvalidParameter
from volumepipeline.merger import PageMerger
from volumepipeline.pages import ChapterInfo, Origin, Page, PageStore, Volume
from volumepipeline.pipeline import VolumePipeline, VolumeResult, VolumeState
from volumepipeline.progress import NullProgress
from volumepipeline.writer import DirectoryWriter


def quiet(desc):
    return NullProgress()


def make_image(size, value=255):
    image = Image.new("L", size, value)
    # Dark block so autocrop has something to find
    image.paste(0, (1, 1, size[0] - 1, size[1] - 1))
    return image


def network_pages(chapters, progress):
    pages = PageStore()
    for chapter in chapters:
        pages.append(Page(chapter.volume_id, chapter.identifier, 0, make_image((20, 30)), Origin.NETWORK))
        pages.append(Page(chapter.volume_id, chapter.identifier, 1, make_image((40, 30)), Origin.NETWORK))
    return pages


def disk_pages(chapters, progress):
    return PageStore(
        Page(c.volume_id, c.identifier, 0, make_image((20, 30)), Origin.DISK) for c in chapters
    )


def make_volume(identifier="1") -> Volume:
    return Volume(identifier, [
        ChapterInfo("1", identifier, Origin.NETWORK),
        ChapterInfo("2", identifier, Origin.DISK, group="Filesystem"),
    ])


def make_pipeline(config=None, network=network_pages, disk=disk_pages, **kwargs) -> VolumePipeline:
    return VolumePipeline(
        config or PipelineConfig(),
        merger=PageMerger(network, disk),
        progress_factory=quiet,
        **kwargs,
    )


class TestPipelineConfig:
    """Tests for configuration validation."""

    def test_modes_mutually_exclusive(self):
        """Split and rotate-only cannot both be enabled."""
        with pytest.raises(InvalidParameter):
            PipelineConfig(rotate_and_split=True, rotate_only=True)

    @pytest.mark.parametrize("gamma", [0, -2.0])
    def test_gamma_must_be_positive(self, gamma):
        """Invalid gamma is rejected before any work starts."""
        with pytest.raises(InvalidParameter):
            PipelineConfig(gamma=gamma)

    def test_crop_tolerance_range(self):
        """Tolerance must leave some of the page."""
        with pytest.raises(InvalidParameter):
            PipelineConfig(crop_tolerance=0.5)

    def test_double_page_mode(self):
        """The mode property reflects the flags."""
        assert PipelineConfig().double_page_mode is None
        assert PipelineConfig(rotate_only=True).double_page_mode == "rotate"
        assert PipelineConfig(rotate_and_split=True).double_page_mode == "split"

    def test_frozen(self):
        """Configuration cannot change after construction."""
        config = PipelineConfig()
        with pytest.raises(AttributeError):
            config.gamma = 2.0


class TestRun:
    """Tests for running single volumes."""

    def test_no_stages(self):
        """Without stages the volume goes straight to ready."""
        result = make_pipeline().run(make_volume())
        assert result.success
        assert result.history == [VolumeState.ACQUIRED, VolumeState.READY]
        assert len(result.pages) == 3

    def test_pages_in_default_order(self):
        """Acquired pages are sorted by chapter and page."""
        result = make_pipeline().run(make_volume())
        assert [p.key for p in result.pages] == [("1", 0), ("1", 1), ("2", 0)]

    def test_all_stages(self):
        """Crop runs before splitting and both are recorded."""
        config = PipelineConfig(autocrop=True, rotate_and_split=True)
        result = make_pipeline(config).run(make_volume())
        assert result.history == [
            VolumeState.ACQUIRED,
            VolumeState.CROPPED,
            VolumeState.DOUBLE_PROCESSED,
            VolumeState.READY,
        ]
        assert result.report.double_pages == 1
        assert len(result.pages) == 5
        assert result.pages.find_duplicates() == []

    def test_crop_runs_before_double_pages(self):
        """The double-page stage sees cropped images."""
        seen = []

        def cropper(image, tolerance):
            return image.crop((0, 0, 10, 10))

        def classify(image):
            seen.append(image.size)
            return False

        from volumepipeline.doublepage import PageOps

        config = PipelineConfig(autocrop=True, rotate_only=True)
        pipeline = make_pipeline(config, page_ops=PageOps(is_double_page=classify), auto_crop=cropper)
        assert pipeline.run(make_volume()).success
        assert seen == [(10, 10)] * 3

    def test_rotate_only(self):
        """Rotate-only keeps the page count."""
        result = make_pipeline(PipelineConfig(rotate_only=True)).run(make_volume())
        assert result.history[-2:] == [VolumeState.DOUBLE_PROCESSED, VolumeState.READY]
        assert len(result.pages) == 3

    def test_source_failure(self):
        """A retrieval failure fails the volume with a stage message."""
        def broken(chapters, progress):
            raise ConnectionError("unreachable")

        result = make_pipeline(network=broken).run(make_volume())
        assert result.state == VolumeState.FAILED
        assert result.pages is None
        assert result.message == "pages: network: unreachable"
        assert result.history == [VolumeState.FAILED]

    def test_crop_failure(self):
        """A crop failure names the stage, chapter and page."""
        def cropper(image, tolerance):
            if image.size == (40, 30):
                raise ValueError("no margins")
            return image

        config = PipelineConfig(autocrop=True, rotate_and_split=True)
        result = make_pipeline(config, auto_crop=cropper).run(make_volume())
        assert result.state == VolumeState.FAILED
        assert result.message == "autocrop: chapter 1: page 1: no margins"
        assert result.history == [VolumeState.ACQUIRED, VolumeState.FAILED]
        assert result.pages is None

    def test_strict_split_failure(self):
        """Strict mode fails the volume on an unusable split."""
        from volumepipeline.doublepage import PageOps

        config = PipelineConfig(rotate_and_split=True, strict_transforms=True)
        pipeline = make_pipeline(config, page_ops=PageOps(split=lambda image: None))
        result = pipeline.run(make_volume())
        assert result.state == VolumeState.FAILED
        assert result.message.startswith("rotate_and_split: split: chapter 1: page 1")


class TestProcess:
    """Tests for processing already acquired pages."""

    def test_process_without_merger(self):
        """Stages can run on a store without any sources."""
        pipeline = VolumePipeline(PipelineConfig(rotate_and_split=True), progress_factory=quiet)
        store = PageStore([Page("1", "1", 0, make_image((40, 30)))])
        output = pipeline.process(store)
        assert [p.page_id for p in output] == [0, 1, 2]

    @pytest.mark.parametrize("config", [
        PipelineConfig(rotate_and_split=True),
        PipelineConfig(rotate_only=True),
    ])
    def test_handoff_in_chapter_order(self, config):
        """Pages leave the double-page stage ordered by chapter, then page."""
        pipeline = VolumePipeline(config, progress_factory=quiet)
        store = PageStore([
            Page("1", "1", 0, make_image((20, 30))),
            Page("1", "1", 1, make_image((20, 30))),
            Page("1", "2", 0, make_image((20, 30))),
        ])
        output = pipeline.process(store)
        assert [p.key for p in output] == [("1", 0), ("1", 1), ("2", 0)]

    def test_stage_recorded(self):
        """The result names the last stage that ran."""
        pipeline = VolumePipeline(
            PipelineConfig(autocrop=True, rotate_only=True), progress_factory=quiet
        )
        result = VolumeResult(volume_id="1")
        pipeline.process(PageStore([Page("1", "1", 0, make_image((20, 30)))]), result)
        assert result.stage == "rotate_double_pages"
        assert result.history == [VolumeState.CROPPED, VolumeState.DOUBLE_PROCESSED]

    def test_run_requires_merger(self):
        """Acquiring without a merger is a programming error."""
        pipeline = VolumePipeline(PipelineConfig(), progress_factory=quiet)
        with pytest.raises(RuntimeError):
            pipeline.acquire(make_volume())


class TestRunVolumes:
    """Tests for batch processing."""

    def test_failure_isolated(self, tmp_path):
        """A failing volume does not stop its siblings."""
        def network(chapters, progress):
            if chapters[0].volume_id == "1":
                raise ConnectionError("volume 1 gone")
            return network_pages(chapters, progress)

        writer = DirectoryWriter(tmp_path)
        results = make_pipeline(network=network).run_volumes(
            [make_volume("2"), make_volume("1")], writer=writer
        )
        assert [r.volume_id for r in results] == ["1", "2"]
        assert results[0].state == VolumeState.FAILED
        assert results[1].success
        assert not writer.has("1")
        assert writer.has("2")

    def test_existing_volume_skipped(self, tmp_path):
        """Volumes already written are skipped unless forced."""
        writer = DirectoryWriter(tmp_path)
        pipeline = make_pipeline()
        pipeline.run_volumes([make_volume()], writer=writer)

        skipped = pipeline.run_volumes([make_volume()], writer=writer)
        assert skipped[0].state == VolumeState.SKIPPED

        forced = pipeline.run_volumes([make_volume()], writer=writer, force=True)
        assert forced[0].success
